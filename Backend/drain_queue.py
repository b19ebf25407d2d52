"""
Triggers one queue drain pass on a running server. Meant for cron:

    */2 * * * * python drain_queue.py --base-url http://localhost:8002/api
"""

import argparse
import sys

import requests


def trigger(base_url, timeout=600):
    response = requests.post(f"{base_url}/queue/process", timeout=timeout)
    response.raise_for_status()
    return response.json()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run one video queue drain pass")
    parser.add_argument("--base-url", default="http://localhost:8002/api")
    args = parser.parse_args(argv)

    try:
        data = trigger(args.base_url)
    except requests.RequestException as e:
        print(f"Error triggering queue: {e}")
        return 1

    print(f"{data['message']} | rateLimited={data['rateLimited']} | remaining={data['remaining']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
