"""Content hashing for proof records.

The content hash is sha256 over the canonical JSON of a snapshot (sorted
keys, compact separators). A record's chain link is derived from the previous
record's content hash, so consecutive records form an informal sequence.
"""

from __future__ import annotations

import hashlib
import json

from move_prover.models import GameSnapshot

CHAIN_LINK_PREFIX = b"move-prover/chain:"


def snapshot_content_hash(snapshot: GameSnapshot) -> str:
    canonical = json.dumps(snapshot.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def chain_link_hash(previous_content_hash: str) -> str:
    return hashlib.sha256(CHAIN_LINK_PREFIX + previous_content_hash.encode("ascii")).hexdigest()
