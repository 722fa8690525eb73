# util/timing.py
import time
from contextlib import contextmanager
from typing import Iterator, Dict, Any
import logging


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Dict[str, Any]) -> Iterator[None]:
    """
    Usage:
      with timed(logger, "compare.global", chars=1200):
          ...
    Emits one INFO on exit: "<name>.done ms=<int> key=val ..."
    or "<name>.failed ms=<int> err=<Type> key=val ..." when the block raises.
    """
    t0 = time.perf_counter()
    failed: str | None = None
    try:
        yield
    except BaseException as e:
        failed = type(e).__name__
        raise
    finally:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        suffix = "".join(f" {k}={v}" for k, v in kv.items())
        if failed is None:
            logger.info("%s.done ms=%d%s", name, dt_ms, suffix)
        else:
            logger.info("%s.failed ms=%d err=%s%s", name, dt_ms, failed, suffix)
