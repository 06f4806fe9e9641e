#!/usr/bin/env python3
"""
Startup script for the Tailor Ops dashboard API
Order writes, live notifications and the due-date calendar
"""

import os
import sys
import logging
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv(project_root / ".env")


def setup_logging(log_level: str = "INFO"):
    """Set up logging configuration."""
    logs_dir = project_root / "logs"
    logs_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(logs_dir / "tailor_dashboard.log")
        ]
    )


def check_dependencies():
    """Check if required dependencies are installed."""
    REQUIRED_PACKAGES = [
        'fastapi',
        'uvicorn',
        'websockets',
        'httpx',
        'pydantic_settings',
        'python_multipart',
        'supabase',
    ]

    missing_packages = []

    for package in REQUIRED_PACKAGES:
        try:
            __import__(package)
        except ImportError:
            missing_packages.append(package)

    if missing_packages:
        print(f"❌ Missing required packages: {', '.join(missing_packages)}")
        print("Install them with: pip install -e .")
        return False

    return True


def check_environment():
    """Check environment variables"""
    required_vars = [
        'SUPABASE_URL',
        'SUPABASE_ANON_KEY',
    ]

    missing_vars = [var for var in required_vars if not os.getenv(var)]
    if missing_vars:
        print(f"❌ Missing required environment variables: {', '.join(missing_vars)}")
        print("Set them in your .env file or environment")
        return False
    print("✅ All required environment variables are set")

    # Status emails are optional; the service runs without them
    optional_vars = [
        'EMAILJS_SERVICE_ID',
        'EMAILJS_TEMPLATE_ID',
        'EMAILJS_PUBLIC_KEY',
    ]
    for var in optional_vars:
        if not os.getenv(var):
            print(f"ℹ️  Optional variable {var} not set - ready/delivered emails are disabled")

    supabase_url = os.getenv('SUPABASE_URL', '')
    if not supabase_url.startswith('https://'):
        print(f"⚠️  SUPABASE_URL should start with https:// (current: {supabase_url})")
    return True


def start_dashboard_service(host: str = "0.0.0.0", port: int = 5001, reload: bool = False):
    """Start the dashboard API"""
    try:
        import uvicorn

        print(f"🚀 Starting Tailor Ops dashboard API on {host}:{port}")
        print(f"🔔 Notifications WebSocket: ws://{host}:{port}/ws/notifications?token=<access token>")
        print(f"📊 Health check: http://{host}:{port}/health")
        print(f"📅 Calendar: http://{host}:{port}/dashboard/calendar")

        uvicorn.run(
            "tailor_ops.services.dashboard_api:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info"
        )

    except ImportError as e:
        print(f"❌ Failed to import required modules: {e}")
        print("Make sure you're in the correct directory and dependencies are installed")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Failed to start dashboard API: {e}")
        sys.exit(1)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Start the Tailor Ops dashboard API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 5001)), help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--check-only", action="store_true", help="Only check dependencies and exit")

    args = parser.parse_args()

    setup_logging(args.log_level)

    print("🧵 Tailor Ops Dashboard Startup")
    print("=" * 45)

    print("📋 Checking dependencies...")
    if not check_dependencies():
        sys.exit(1)
    print("✅ All dependencies available")

    print("🔧 Checking environment...")
    if not check_environment():
        sys.exit(1)

    if args.check_only:
        print("✅ All checks passed!")
        return

    start_dashboard_service(
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
