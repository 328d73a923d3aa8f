"""
Battery Icon Generator
Writes static tray icons for packaged builds of Cycle Tracker.
"""

import os

from cycle_tracker.icons import create_cycle_icon


def main():
    """Generate the static icon set."""
    assets_dir = os.path.join(os.path.dirname(__file__), 'assets')
    os.makedirs(assets_dir, exist_ok=True)

    icons = {
        'icon.png': dict(completion=0.9),
        'icon_charging.png': dict(completion=0.9, on_external_power=True),
        'icon_unknown.png': dict(completion=None),
    }

    print("Generating battery icons...")
    print("-" * 50)

    for name, options in icons.items():
        path = os.path.join(assets_dir, name)
        create_cycle_icon(**options).save(path, 'PNG')
        print(f"Created: {os.path.abspath(path)}")

    print("-" * 50)
    print("Icon generation complete!")


if __name__ == "__main__":
    main()
