#!/usr/bin/env python3
"""Check .env loading, credentials and wait configuration before a run."""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from deckrelay.config.settings import DEFAULT_CONFIG_PATH, load_settings


def check_environment(config_path: str = DEFAULT_CONFIG_PATH):
    """Print a configuration report. Returns 0 when a run can start unattended."""

    print("=== Environment Check Report ===\n")

    print("1. Files:")
    for name in [".env", ".env.example", config_path]:
        status = "✓" if Path(name).exists() else "✗"
        print(f"  {name}: {status}")
    if not Path(".env").exists() and Path(".env.example").exists():
        print("  Run: cp .env.example .env, then edit .env with your credentials")
    print()

    settings = load_settings(config_path)

    print("2. Settings:")
    for key, value in settings.safe_summary().items():
        print(f"  {key}: {value}")
    print()

    print("3. Open WebUI credentials:")
    username_var = "OPENWEBUI_USERNAME" if os.getenv("OPENWEBUI_USERNAME") else "OPENWEBUI_EMAIL"
    print(f"  {username_var}: {'✓' if settings.username else '✗'}")
    print(f"  OPENWEBUI_PASSWORD: {'✓ (***)' if settings.password else '✗'}")
    print()

    print("4. Wait budgets (timeout / interval, seconds):")
    for name, budget in settings.waits.model_dump().items():
        if isinstance(budget, dict):
            print(f"  {name}: {budget['timeout']:g} / {budget['interval']:g}")
    print()

    print("=== ASSESSMENT ===")
    if settings.has_credentials:
        print("✅ Credentials configured - login will be automatic")
    else:
        print("⚠️  No credentials - a login page will fall back to signup with test credentials")
        print("   Add to .env:")
        print("   OPENWEBUI_USERNAME=your-email@example.com")
        print("   OPENWEBUI_PASSWORD=your-password")

    if settings.knowledge_tag:
        print(f"✅ Knowledge tag: {settings.knowledge_tag}")
    else:
        print("ℹ️  No KNOWLEDGE_TAG - prompts are sent without knowledge selection")

    return 0 if settings.has_credentials else 1


if __name__ == "__main__":
    exit_code = check_environment(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH)
    sys.exit(exit_code)
