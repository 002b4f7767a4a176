#!/usr/bin/env python3
"""Scripted stand-in for the MCP server, driven by McpTestClient tests.

Reads line-delimited JSON-RPC on stdin; behaviour depends on the method:

  fake/echo     result echoes method and params
  fake/fail     JSON-RPC error -32000
  fake/silent   never answered (timeout tests)
  fake/orphan   answers an unknown id first, then the real one
  fake/garbage  writes a non-JSON line first, then the real one
  fake/stderr   writes params["line"] to stderr, then answers
  fake/exit     exits with params["code"] without answering

Env:
  FAKE_IGNORE_EOF=1  keep running after stdin closes (stop() escalation tests)
"""

import json
import os
import sys
import time


def send(message: dict) -> None:
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def handle(request: dict) -> None:
    method = request.get("method")
    request_id = request.get("id")
    params = request.get("params") or {}

    if "id" not in request:
        return
    if method == "fake/silent":
        return
    if method == "fake/exit":
        sys.exit(int(params.get("code", 3)))
    if method == "fake/orphan":
        send({"jsonrpc": "2.0", "id": 987654, "result": {}})
    if method == "fake/garbage":
        sys.stdout.write("this is not json\n")
        sys.stdout.flush()
    if method == "fake/stderr":
        sys.stderr.write(str(params.get("line", "")) + "\n")
        sys.stderr.flush()
    if method == "fake/fail":
        send({
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {"code": -32000, "message": "Scripted failure", "data": params},
        })
        return

    send({"jsonrpc": "2.0", "id": request_id, "result": {"method": method, "params": params}})


def main() -> None:
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            request = json.loads(line)
        except json.JSONDecodeError:
            send({"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}})
            continue
        handle(request)

    if os.environ.get("FAKE_IGNORE_EOF") == "1":
        while True:
            time.sleep(1)


if __name__ == "__main__":
    main()
