"""Sequence manager.

Assumptions:
- A sequence is ingested (video or photo folder) before it is committed.
- Sequence names are unique among committed sequences.
- ffmpeg and ffprobe are on PATH for video ingestion.
"""
from sequence_manager.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
