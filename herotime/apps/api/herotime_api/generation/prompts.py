"""Default generation prompt (used when the client sends none)."""

DEFAULT_PROMPT = """
Create a photorealistic, funny, and cinematic superhero-style composite using all provided images.
Each image belongs to a specific body region group (head, body, hands, legs).
Use these logical groupings to decide placement, not the filenames.

REQUIRED ELEMENTS:
- Face: Use the provided face image to preserve the person's identity (can enhance expression for humor).
- Head Group: Place all images from this group naturally around or on the head (e.g., hats, helmets, crowns, goggles, glasses, etc.).
- Body Group: Place all images from this group logically on the torso (e.g., belts, shirts, armor, jackets, vests, accessories).
- Left Hand Group: Attach items from this group to or near the left hand (e.g., objects being held, props, weapons, funny gadgets).
- Right Hand Group: Attach items from this group to or near the right hand (same logic as left hand).
- Left Leg Group: Place items from this group on or near the left leg or foot (e.g., shoes, boots, pants, armor).
- Right Leg Group: Place items from this group on or near the right leg or foot.
- Use the hero body base image as the main figure.

CREATIVE FREEDOM:
- Choose any funny, exaggerated superhero or fantasy pose.
- Background: cinematic, dramatic, or humorous (chaotic scene, fantasy world, comic explosion, etc.).
- Enhance composition with dramatic lighting, wind, motion blur, and vivid colors.
- Maintain a cohesive, seamless photorealistic look.

TECHNICAL QUALITY:
- Ultra high quality, photorealistic rendering.
- Perfect blending between all image layers.
- Sharp details, vibrant tones, 3D cinematic depth.

GOAL:
Make a creative, funny superhero image that clearly shows the user's face and logically arranges all items by their body region group.

negative_prompt: "distorted face, mismatched props, misplaced body parts, bad blending, boring background, nudity, text overlays, offensive content"
""".strip()
