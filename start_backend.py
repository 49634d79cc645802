#!/usr/bin/env python3
"""
Startup script for the campaign code analyzer backend.

This script starts the FastAPI server with proper configuration.
"""

import os
import sys
import uvicorn
from pathlib import Path

def main():
    """Start the FastAPI backend server."""

    # Change to backend directory
    backend_dir = (Path(__file__).parent / "backend").resolve()

    print("🚀 Starting Campaign Code Analyzer Backend...")
    print(f"📁 Backend directory: {backend_dir}")

    app_dir = backend_dir / "app"
    if not (app_dir / "main.py").exists():
        print(f"❌ Error: main.py not found in {app_dir}")
        sys.exit(1)

    os.chdir(backend_dir)
    # campaignlint (version metadata) lives next to backend/
    sys.path.insert(0, str(backend_dir.parent))
    os.environ["PYTHONPATH"] = os.pathsep.join(filter(None, [str(backend_dir.parent), os.getenv("PYTHONPATH")]))

    log_level = os.getenv("LOG_LEVEL", "info").lower()
    port = int(os.getenv("PORT", "8000"))

    print(f"🌐 Server will be available at: http://localhost:{port}")
    print(f"📖 API documentation will be available at: http://localhost:{port}/docs")
    print("\n" + "="*60)

    try:
        uvicorn.run(
            "app.main:app",
            host="0.0.0.0",
            port=port,
            reload=True,
            reload_dirs=["app"],
            log_level=log_level,
        )
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
    except Exception as e:
        print(f"\n❌ Server failed to start: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
