#!/usr/bin/env python3
"""
recap Setup Wizard

A simple command-line setup wizard to configure API keys, the delivery
webhook and capture timing for new users.
"""

import sys

from recap.config_manager import ConfigManager, get_config_manager, parse_duration
from recap.errors import ConfigError


def print_banner():
    """Print the setup wizard banner."""
    print("=" * 60)
    print("                RECAP SETUP WIZARD")
    print("=" * 60)
    print()
    print("This wizard stores your API keys and preferences in")
    print("~/.config/recap/recap_config.json.")
    print()


def get_user_input(prompt: str, default: str = "") -> str:
    """Get user input with a default value."""
    if default:
        user_input = input(f"{prompt} [{default}]: ").strip()
        return user_input if user_input else default
    else:
        return input(f"{prompt}: ").strip()


def validate_api_key(api_key: str) -> bool:
    """Basic validation for API keys."""
    if not api_key:
        return False
    if len(api_key) < 20:  # Most API keys are longer
        return False
    return True


def validate_webhook_url(url: str) -> bool:
    return url.startswith(("http://", "https://")) and len(url) > len("https://")


def setup_api_keys(config_manager: ConfigManager):
    """Set up API keys for the user."""
    print("API Key Configuration")
    print("-" * 30)
    print()

    providers = [
        ("openrouter", "OpenRouter API Key (screenshot analysis)", "https://openrouter.ai/keys"),
        ("openai", "OpenAI API Key (header image generation)", "https://platform.openai.com/api-keys"),
    ]
    for number, (name, title, url) in enumerate(providers, 1):
        print(f"{number}. {title}")
        print(f"   Get your key from: {url}")
        if config_manager.get_api_key(name):
            print("   (a key is already configured)")
        print()

        key = get_user_input(f"Enter your {name} API key (or press Enter to skip)")
        if key and validate_api_key(key):
            config_manager.set_api_key(name, key)
            print(f"✓ {name} API key saved!")
        elif key:
            print(f"⚠ Invalid API key format. Skipping {name} setup.")
        else:
            print(f"⏭ Skipping {name} setup.")
        print()


def setup_delivery(config_manager: ConfigManager):
    """Set up the webhook the generated post is sent to."""
    print("Delivery")
    print("-" * 20)
    print()

    current = config_manager.get_setting("webhook_url") or ""
    url = get_user_input("Webhook URL (or press Enter to skip)", current)
    if url and validate_webhook_url(url):
        config_manager.set_setting("webhook_url", url)
        print(f"✓ Webhook URL set to: {url}")
    elif url:
        print("⚠ Webhook URL must start with http:// or https://. Skipping.")


def setup_timing(config_manager: ConfigManager):
    """Set up capture and batch intervals."""
    print()
    print("Timing")
    print("-" * 20)
    print()

    for name, label in (("capture_interval", "Time between screenshots"),
                        ("batch_interval", "Time between batch summaries")):
        current = str(config_manager.get_setting(name, ""))
        value = get_user_input(f"{label} (e.g. 90s, 5m, 1h)", current)
        try:
            seconds = parse_duration(value)
            config_manager.set_setting(name, seconds)
            print(f"✓ {label}: {seconds:g} seconds")
        except (ValueError, ConfigError) as e:
            print(f"⚠ {e}. Keeping {current}.")

    current_dir = config_manager.get_setting("screenshots_dir", "~/.cache/recap/screenshots")
    screenshots_dir = get_user_input("Screenshots directory", current_dir)
    if screenshots_dir:
        config_manager.set_setting("screenshots_dir", screenshots_dir)
        print(f"✓ Screenshots directory set to: {screenshots_dir}")


def show_summary(config_manager: ConfigManager):
    """Show a summary of the configuration."""
    print()
    print("Configuration Summary")
    print("-" * 25)
    print()

    config = config_manager._load_config()

    api_keys = config.get("api_keys", {})
    if api_keys:
        print("✓ API Keys configured:")
        for provider, key in api_keys.items():
            masked_key = key[:8] + "..." + key[-4:] if len(key) > 12 else "***"
            print(f"   {provider}: {masked_key}")
    else:
        print("⚠ No API keys configured")

    print()

    app_settings = config.get("app_settings", {})
    if app_settings:
        print("✓ App Settings:")
        for key, value in app_settings.items():
            print(f"   {key}: {value}")

    print()

    missing = config_manager.get_missing_config()
    if not missing:
        print("🎉 Configuration complete! Start capturing with:")
        print("   recap")
    else:
        print(f"⚠ Configuration incomplete, missing: {', '.join(missing)}")
        print()
        print("You can run this setup wizard again anytime with:")
        print("   python setup_wizard.py")


def main():
    """Main setup wizard function."""
    try:
        print_banner()

        config_manager = get_config_manager()

        setup_api_keys(config_manager)
        setup_delivery(config_manager)
        setup_timing(config_manager)

        show_summary(config_manager)

        print()
        print("=" * 60)
        print("Setup wizard completed!")
        print("=" * 60)

    except KeyboardInterrupt:
        print("\n\nSetup cancelled by user.")
        sys.exit(1)
    except (OSError, ConfigError) as e:
        print(f"\nError during setup: {e}")
        print("Please check your configuration and try again.")
        sys.exit(1)


if __name__ == "__main__":
    main()
