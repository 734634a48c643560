#!/usr/bin/env python3
"""
Startup script for the SecureBot backend.

This script checks the required configuration and starts the FastAPI server.
"""

import os
import sys
import uvicorn
from pathlib import Path


def main():
    """Start the FastAPI backend server."""

    backend_dir = (Path(__file__).parent / "backend").resolve()
    sys.path.insert(0, str(Path(__file__).parent.resolve()))

    from backend.app.config import config

    print("🚀 Starting SecureBot Backend...")
    print(f"📁 Backend directory: {backend_dir}")

    missing = config.missing_required()
    if missing:
        print("❌ Missing required configuration:")
        for name in missing:
            print(f"   - {name}")
        print("   Please set them in your environment or config.json")
        sys.exit(1)
    print("✅ All required configuration is set")

    port = int(os.getenv("PORT", "3000"))
    timeout = config.get_operation_timeout()

    os.chdir(backend_dir)

    print(f"🌐 Server will be available at: http://localhost:{port}")
    print(f"📖 API documentation will be available at: http://localhost:{port}/docs")
    print(f"⏱️ Long operation timeout: {timeout}s")
    print("\n" + "="*60)

    try:
        uvicorn.run(
            "app.main:app",
            host="0.0.0.0",
            port=port,
            timeout_keep_alive=timeout,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
    except Exception as e:
        print(f"\n❌ Server failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
