"""
Tray icon drawing.

Draws a battery whose fill shows progress through the current charge cycle,
with a bolt when running on external power.
"""

from PIL import Image, ImageDraw

ICON_SIZE = (64, 64)
BATTERY_COLOR = "#00AA00"
EXTERNAL_COLOR = "#1E6FD9"
UNKNOWN_COLOR = "#888888"


def create_cycle_icon(
    completion=None,
    on_external_power=False,
    size=ICON_SIZE,
):
    """
    Create a battery icon image.

    Args:
        completion: Fraction of the current cycle completed (0 to 1), or None if unknown
        on_external_power: Draw the charging bolt
        size: Tuple of (width, height) in pixels

    Returns:
        PIL Image in RGBA mode
    """
    if completion is None:
        color = UNKNOWN_COLOR
        fill_level = 0.0
    else:
        color = EXTERNAL_COLOR if on_external_power else BATTERY_COLOR
        fill_level = max(0.0, min(1.0, completion))

    img = Image.new('RGBA', size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    width, height = size

    padding = 8
    battery_width = width - (2 * padding)
    battery_height = height - (2 * padding) - 4
    battery_x = padding
    battery_y = padding + 4

    # Terminal (nub on top-right)
    terminal_width = 12
    terminal_height = 4
    terminal_x = battery_x + battery_width - terminal_width - 4
    draw.rounded_rectangle(
        [terminal_x, padding, terminal_x + terminal_width, padding + terminal_height],
        radius=2,
        fill=color,
        outline=color
    )

    draw.rounded_rectangle(
        [battery_x, battery_y, battery_x + battery_width, battery_y + battery_height],
        radius=4,
        fill=None,
        outline=color,
        width=2
    )

    # Fill grows from the bottom as the cycle completes
    fill_padding = 4
    fill_x = battery_x + fill_padding
    fill_y = battery_y + fill_padding
    fill_width = battery_width - (2 * fill_padding)
    fill_height = battery_height - (2 * fill_padding)
    actual_fill_height = int(fill_height * fill_level)

    if actual_fill_height > 0:
        draw.rounded_rectangle(
            [fill_x, fill_y + (fill_height - actual_fill_height), fill_x + fill_width, fill_y + fill_height],
            radius=2,
            fill=color
        )

    if on_external_power:
        cx = width // 2
        cy = battery_y + battery_height // 2
        draw.polygon(
            [(cx + 3, cy - 14), (cx - 7, cy + 2), (cx - 1, cy + 2),
             (cx - 3, cy + 14), (cx + 7, cy - 2), (cx + 1, cy - 2)],
            fill='white',
            outline='black'
        )

    return img
