from __future__ import annotations

import asyncio
import base64
import io
import json
import socket

import mido
import pytest

from stepgrid.config import GridConfig
from stepgrid.ws_server import serve_ws


def _free_port() -> int:
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    addr, port = s.getsockname()
    s.close()
    return port


async def _connect(url: str):
    import websockets

    for _ in range(50):  # retry for up to ~2.5s while server boots
        try:
            return await websockets.connect(url)
        except Exception:
            await asyncio.sleep(0.05)
    raise RuntimeError("failed to connect to WS server")


async def _request(ws, obj):
    await ws.send(json.dumps(obj))
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=5.0))


def _timeline_text(n_tracks: int) -> str:
    tracks = [
        {"channel": i, "name": f"T{i}", "notes": [{"midi": 60 + i, "name": "n", "ticks": 0, "durationTicks": 96}]}
        for i in range(n_tracks)
    ]
    return json.dumps({"header": {"ppq": 96}, "tracks": tracks})


@pytest.mark.asyncio
async def test_ws_convert_roundtrip():
    port = _free_port()
    server_task = asyncio.create_task(serve_ws("127.0.0.1", port, GridConfig(max_patterns=2)))
    try:
        ws = await _connect(f"ws://127.0.0.1:{port}")
        try:
            hello = json.loads(await asyncio.wait_for(ws.recv(), timeout=3.0))
            assert hello["type"] == "hello"
            assert hello["payload"]["maxPatterns"] == 2

            resp = await _request(ws, {"type": "convert", "id": 1, "payload": {"format": "json", "text": _timeline_text(3)}})
            assert resp["type"] == "grid" and resp["id"] == 1
            assert [t["name"] for t in resp["payload"]["tracks"]] == ["T0", "T1"]
            assert [n["code"] for n in resp["payload"]["notices"]] == ["capacity_exceeded"]
            assert resp["payload"]["tracks"][0]["notes"][0]["len"] == 4

            # per-request capacity override leaves the server default alone
            resp = await _request(ws, {"type": "convert", "id": 2, "payload": {"format": "json", "text": _timeline_text(3), "maxPatterns": 5}})
            assert len(resp["payload"]["tracks"]) == 3
            resp = await _request(ws, {"type": "convert", "id": 3, "payload": {"format": "json", "text": _timeline_text(3)}})
            assert len(resp["payload"]["tracks"]) == 2

            resp = await _request(ws, {"type": "convert", "id": 4, "payload": {"format": "json", "text": "[]"}})
            assert resp["type"] == "error"
            assert resp["payload"]["error"] == "no_notation_parsed"

            resp = await _request(ws, {"type": "convert", "id": 5, "payload": {"format": "abc", "text": "not notation"}})
            assert resp["payload"]["error"] == "no_notation_parsed"

            resp = await _request(ws, {"type": "convert", "id": 6, "payload": {"format": "wav"}})
            assert resp["payload"]["error"] == "convert_failed"

            resp = await _request(ws, {"type": "ping", "id": 7})
            assert resp["type"] == "pong" and resp["id"] == 7

            resp = await _request(ws, {"type": "bogus", "id": 8})
            assert resp["payload"]["error"] == "unknown_type"
        finally:
            await ws.close()
    finally:
        server_task.cancel()
        try:
            await server_task
        except asyncio.CancelledError:
            pass


@pytest.mark.asyncio
async def test_ws_convert_midi_payload():
    mid = mido.MidiFile(ticks_per_beat=480)
    tr = mido.MidiTrack()
    tr.append(mido.Message("note_on", note=60, velocity=100, time=480))
    tr.append(mido.Message("note_off", note=60, time=480))
    mid.tracks.append(tr)
    buf = io.BytesIO()
    mid.save(file=buf)

    port = _free_port()
    server_task = asyncio.create_task(serve_ws("127.0.0.1", port))
    try:
        ws = await _connect(f"ws://127.0.0.1:{port}")
        try:
            await asyncio.wait_for(ws.recv(), timeout=3.0)
            data = base64.b64encode(buf.getvalue()).decode("ascii")
            resp = await _request(ws, {"type": "convert", "id": 1, "payload": {"format": "midi", "data": data}})
            assert resp["type"] == "grid"
            note = resp["payload"]["tracks"][0]["notes"][0]
            assert (note["seq"], note["len"], note["name"]) == (4, 4, "C4")
            assert resp["payload"]["tracks"][0]["cellCount"] == 16
        finally:
            await ws.close()
    finally:
        server_task.cancel()
        try:
            await server_task
        except asyncio.CancelledError:
            pass
