"""HeroTime reaper: fails generations abandoned by a crashed API process."""
