# memory/config.py
# Central configuration for agent memory: retrieval windows, KV namespace keys, data paths, background ingestion.

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from common.utils import to_bool, to_int

# ---------- Paths ----------
ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"


# ---------- Config Dataclass ----------
@dataclass
class MemoryConfig:
    # Retrieval tiers
    SHORT_TERM_LIMIT: int = 3             # frames rendered by short_term() by default
    PEEK_LIMIT: int = 5                   # frames summarized by share_peek()

    # Persistence (KV namespace keys)
    STREAMS_KEY: str = "pratejra_memory_streams"
    PERSIST_ENABLED: bool = True

    # Archive ingestion (fire-and-forget)
    INGEST_QUEUE_SIZE: int = 64
    INGEST_WORKERS: int = 1

    # Paths
    DATA_DIR: Path = DATA_DIR
    KV_DIR: Path = DATA_DIR / "kv"


# ---------- Build config with env overrides ----------
def build_from_env() -> MemoryConfig:
    cfg = MemoryConfig()
    cfg.SHORT_TERM_LIMIT = to_int(os.getenv("CORE_MEM_SHORT_TERM"), cfg.SHORT_TERM_LIMIT)
    cfg.PEEK_LIMIT = to_int(os.getenv("CORE_MEM_PEEK_LIMIT"), cfg.PEEK_LIMIT)

    cfg.STREAMS_KEY = os.getenv("CORE_MEM_STREAMS_KEY", cfg.STREAMS_KEY)
    cfg.PERSIST_ENABLED = to_bool(os.getenv("CORE_MEM_PERSIST"), cfg.PERSIST_ENABLED)

    cfg.INGEST_QUEUE_SIZE = to_int(os.getenv("CORE_MEM_INGEST_QUEUE"), cfg.INGEST_QUEUE_SIZE)
    cfg.INGEST_WORKERS = to_int(os.getenv("CORE_MEM_INGEST_WORKERS"), cfg.INGEST_WORKERS)

    data_dir = os.getenv("CORE_DATA_DIR")
    if data_dir:
        cfg.DATA_DIR = Path(data_dir)
        cfg.KV_DIR = cfg.DATA_DIR / "kv"
    return cfg


MEMCFG = build_from_env()

# ---------- Quick usage notes ----------
# from memory.config import MEMCFG
# store = StreamMemory(kv, cfg=MEMCFG)
# FileKV(MEMCFG.KV_DIR)
