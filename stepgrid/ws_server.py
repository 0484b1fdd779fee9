from __future__ import annotations

import argparse
import asyncio
import base64
import json
import time
from typing import Any, Dict, Optional

import websockets

from stepgrid.config import DEFAULT_MAX_PATTERNS, GridConfig, SIZE_BY_EXTENT, SIZE_BY_START
from stepgrid.converter import NoTimelineParsed, convert
from stepgrid.sources import AbcSource, JsonTimelineSource, MidiFileSource

PROTOCOL = 1


def _msg(t: str, req_id: Any = None, payload: Optional[Dict[str, Any]] = None) -> str:
    obj: Dict[str, Any] = {"type": t, "ts": time.time()}
    if req_id is not None:
        obj["id"] = req_id
    if payload is not None:
        obj["payload"] = payload
    return json.dumps(obj)


def _error(req_id: Any, error: str, details: Optional[str] = None) -> str:
    payload: Dict[str, Any] = {"ok": False, "error": error}
    if details:
        payload["details"] = details
    return _msg("error", req_id, payload)


def convert_request(payload: Dict[str, Any], config: GridConfig) -> Dict[str, Any]:
    """Run one conversion for a WS `convert` payload and return the grid dict.

    payload: {format: "abc"|"json"|"midi", text?: str, data?: base64 str,
    maxPatterns?: int, sizeBy?: str, merge?: bool}. Per-request overrides
    build a fresh GridConfig, so requests never share settings.
    """
    fmt = payload.get("format", "abc")
    cfg = GridConfig(
        max_patterns=int(payload.get("maxPatterns", config.max_patterns)),
        default_ppq=config.default_ppq,
        size_by=str(payload.get("sizeBy", config.size_by)),
        merge_tracks=bool(payload.get("merge", config.merge_tracks)),
    )
    if fmt == "abc":
        grid = convert(AbcSource(), str(payload.get("text", "")), cfg)
    elif fmt == "json":
        grid = convert(JsonTimelineSource(), payload.get("text", "[]"), cfg)
    elif fmt == "midi":
        grid = convert(MidiFileSource(), base64.b64decode(payload.get("data", "")), cfg)
    else:
        raise ValueError(f"unsupported format '{fmt}'")
    return grid.to_dict()


async def serve_ws(host: str, port: int, config: Optional[GridConfig] = None):
    cfg = config or GridConfig()

    async def handler(ws, *maybe_path):
        try:
            ra = getattr(ws, "remote_address", None)
            print(f"[ws] client connected: {ra}", flush=True)
        except Exception:
            pass
        await ws.send(_msg("hello", payload={"protocol": PROTOCOL, "maxPatterns": cfg.max_patterns}))
        async for message in ws:
            try:
                obj = json.loads(message)
            except ValueError:
                await ws.send(_error(None, "invalid_json"))
                continue
            if not isinstance(obj, dict):
                await ws.send(_error(None, "invalid_message"))
                continue
            t = obj.get("type")
            req_id = obj.get("id")
            if t == "ping":
                await ws.send(_msg("pong", req_id))
            elif t == "convert":
                payload = obj.get("payload") or {}
                try:
                    grid = await asyncio.to_thread(convert_request, payload, cfg)
                except NoTimelineParsed as e:
                    print(f"[ws] convert id={req_id}: {e}", flush=True)
                    await ws.send(_error(req_id, "no_notation_parsed", str(e)))
                except Exception as e:
                    print(f"[ws] convert id={req_id} failed: {e}", flush=True)
                    await ws.send(_error(req_id, "convert_failed", str(e)))
                else:
                    print(f"[ws] convert id={req_id}: {len(grid['tracks'])} track(s)", flush=True)
                    await ws.send(_msg("grid", req_id, grid))
            else:
                await ws.send(_error(req_id, "unknown_type", str(t)))

    async with websockets.serve(handler, host, port):
        print(f"[ws] stepgrid listening on ws://{host}:{port}", flush=True)
        await asyncio.Future()


def main():
    ap = argparse.ArgumentParser(description="Step-grid conversion WS server")
    ap.add_argument("--ws-host", default="127.0.0.1")
    ap.add_argument("--ws-port", type=int, default=8765)
    ap.add_argument("--max-patterns", type=int, default=DEFAULT_MAX_PATTERNS)
    ap.add_argument("--size-by", choices=[SIZE_BY_START, SIZE_BY_EXTENT], default=SIZE_BY_START)
    args = ap.parse_args()
    cfg = GridConfig(max_patterns=args.max_patterns, size_by=args.size_by)
    try:
        asyncio.run(serve_ws(args.ws_host, args.ws_port, cfg))
    except KeyboardInterrupt:
        print("[ws] shutting down")


if __name__ == "__main__":
    main()
