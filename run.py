#!/usr/bin/env python
"""
Alumni platform backend launcher

Usage:
    python run.py                    # default (127.0.0.1:8000)
    python run.py -p 8080            # custom port
    python run.py --host 0.0.0.0     # listen on all interfaces
    python run.py --reload           # auto reload
"""
import argparse
import shutil
from pathlib import Path

import uvicorn

ROOT_DIR = Path(__file__).parent


def parse_args():
    parser = argparse.ArgumentParser(
        description="Alumni platform backend launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=8000,
        help="port (default: 8000)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="host (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="reload on code changes"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="worker processes (default: 1)"
    )
    return parser.parse_args()


def check_env():
    """Create .env from .env.example and the sqlite data directory when missing"""
    env_file = ROOT_DIR / ".env"
    env_example = ROOT_DIR / ".env.example"

    if not env_file.exists():
        if env_example.exists():
            print("No .env found, copying .env.example")
            shutil.copy(env_example, env_file)
        else:
            print("No .env found, using defaults")

    data_dir = ROOT_DIR / "data"
    if not data_dir.exists():
        data_dir.mkdir(parents=True)
        print(f"Created data directory: {data_dir}")


def main():
    args = parse_args()

    print("=" * 50)
    print("  Alumni platform backend")
    print("=" * 50)

    check_env()

    print(f"\nStarting on http://{args.host}:{args.port}")
    print(f"   docs: http://{args.host}:{args.port}/docs")
    print(f"   reload: {'on' if args.reload else 'off'}")
    print(f"   workers: {args.workers}")
    print("\n" + "-" * 50 + "\n")

    try:
        uvicorn.run(
            "alumni.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=args.workers if not args.reload else 1,
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nStopped")


if __name__ == "__main__":
    main()
