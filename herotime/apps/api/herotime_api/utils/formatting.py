"""Human-readable formatting helpers."""

_KB = 1024
_MB = 1024 * 1024


def format_file_size(num_bytes: int) -> str:
    """Render a byte count as "B", "KB" or "MB".

    Below 1 KB the raw byte count is used; above it, one decimal place.

    >>> format_file_size(500)
    '500 B'
    >>> format_file_size(2048)
    '2.0 KB'
    >>> format_file_size(5 * 1024 * 1024)
    '5.0 MB'
    """
    if num_bytes < _KB:
        return f"{num_bytes} B"
    if num_bytes < _MB:
        return f"{num_bytes / _KB:.1f} KB"
    return f"{num_bytes / _MB:.1f} MB"
