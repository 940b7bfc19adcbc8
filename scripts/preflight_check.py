#!/usr/bin/env python3
import sys
import os

print("Running preflight check...")
try:
    # Set dummy env vars to avoid surprises during config load
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import ussd_gateway.main
    print("Import ussd_gateway.main: OK")

    from ussd_gateway.core.menus import build_graph
    graph = build_graph()
    print(f"Menu graph: OK ({len(graph)} nodes, entry={graph.entry})")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
