import json

from aidialer.session import Turn


def to_timestamped_dump(
    turns: list[Turn] | tuple,
    start_time: float,
    call_sid: str,
    phone: str,
    final_status: str,
) -> dict:
    """Build a transcript dump dict for structured logging.

    Timestamps become seconds relative to ``start_time`` (or to the first
    turn when ``start_time`` is 0).  The system turn is skipped.
    """
    spoken = [t for t in turns if t.role != "system"]
    base_time = start_time if start_time > 0 else (spoken[0].timestamp if spoken else 0.0)

    entries = [
        {"t": round(t.timestamp - base_time, 1), "role": t.role, "content": t.content}
        for t in spoken
    ]
    return {
        "call_sid": call_sid,
        "phone": phone,
        "final_status": final_status,
        "entries": entries,
    }


def chunk_transcript_dump(dump: dict, max_bytes: int = 3500) -> list[str]:
    """Render a transcript dump as ``TRANSCRIPT_DUMP|i/n|{json}`` log lines.

    Header fields ride on the first line only.  Entries are packed greedily
    so each JSON body stays within ``max_bytes``; an entry too big on its own
    still gets a line to itself.
    """
    header = {k: v for k, v in dump.items() if k != "entries"}
    bodies = [{**header, "entries": []}]

    for entry in dump.get("entries", []):
        body = bodies[-1]
        body["entries"].append(entry)
        if len(body["entries"]) > 1 and len(json.dumps(body).encode("utf-8")) > max_bytes:
            body["entries"].pop()
            bodies.append({"entries": [entry]})

    total = len(bodies)
    return [f"TRANSCRIPT_DUMP|{i}/{total}|{json.dumps(body)}" for i, body in enumerate(bodies, 1)]
