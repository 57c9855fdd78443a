# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Crypto engine seam.

The engine performs the actual group updates and pairing-based subgroup
checks. It is an external collaborator: this module only defines the narrow
surface the coordinator relies on, an adapter for binding modules that
export plain functions, an import-path loader for the CLI, and the
once-per-process worker-pool bootstrap.

Capabilities
------------
    contribute(transcript, identity, secrets) -> str | {"contribution": str, ...}
    check_subgroup(transcript) -> bool
    verify(transcript) -> bool                   (optional, whole-transcript check)
    derive_public_keys(secrets) -> Any          (optional)
    init_threads(n) -> Any                       (optional, once per process)

``secrets`` is a bare hex string in single-secret mode and a tuple of
``0x``-prefixed hex strings in multi-secret mode (see ``ceremony.entropy``).

Engine calls that may hang run through :func:`call_detached`: a daemon thread
nobody joins, so a timed-out call never holds up loop or interpreter shutdown.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import os
import threading
import types
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from .errors import EngineFailure, EngineUnavailable

logger = logging.getLogger(__name__)

Secrets = Union[str, Sequence[str]]

__all__ = [
    "CryptoEngine",
    "FunctionEngine",
    "load_engine",
    "call_detached",
    "bootstrap_engine",
    "is_bootstrapped",
    "default_concurrency",
]


@runtime_checkable
class CryptoEngine(Protocol):
    def contribute(self, transcript: str, identity: str, secrets: Secrets) -> Any: ...

    def check_subgroup(self, transcript: str) -> bool: ...


# Function names exported by known binding modules, in lookup order.
_ALIASES: Dict[str, Tuple[str, ...]] = {
    "contribute": ("contribute", "contribute_with_string", "contribute_wasm"),
    "check_subgroup": ("check_subgroup", "check_subgroup_with_string", "subgroup_check_wasm"),
    "verify": ("verify", "verify_with_string", "verify_wasm"),
    "derive_public_keys": ("derive_public_keys", "get_pot_pubkeys", "get_pot_pubkeys_wasm"),
    "init_threads": ("init_threads",),
}


class FunctionEngine:
    """
    Engine built from plain callables.

    With ``spread_secrets=True`` multi-secret tuples are passed as separate
    positional arguments, matching bindings shaped like
    ``contribute(transcript, identity, s0, s1, s2, s3)``.
    """

    __slots__ = (
        "_contribute", "_check_subgroup", "_verify", "_derive_public_keys", "_init_threads", "spread_secrets",
    )

    def __init__(
        self,
        contribute: Callable[..., Any],
        check_subgroup: Callable[[str], Any],
        *,
        verify: Optional[Callable[[str], Any]] = None,
        derive_public_keys: Optional[Callable[..., Any]] = None,
        init_threads: Optional[Callable[[int], Any]] = None,
        spread_secrets: bool = False,
    ):
        self._contribute = contribute
        self._check_subgroup = check_subgroup
        self._verify = verify
        self._derive_public_keys = derive_public_keys
        self._init_threads = init_threads
        self.spread_secrets = spread_secrets

    @classmethod
    def from_module(cls, module: types.ModuleType, *, spread_secrets: bool = False) -> "FunctionEngine":
        found: Dict[str, Optional[Callable[..., Any]]] = {}
        for role, names in _ALIASES.items():
            found[role] = next(
                (getattr(module, n) for n in names if callable(getattr(module, n, None))),
                None,
            )
        if found["contribute"] is None or found["check_subgroup"] is None:
            raise EngineUnavailable(module.__name__, "module exports no contribute/check_subgroup functions")
        return cls(
            found["contribute"],
            found["check_subgroup"],
            verify=found["verify"],
            derive_public_keys=found["derive_public_keys"],
            init_threads=found["init_threads"],
            spread_secrets=spread_secrets,
        )

    def _args(self, secrets: Secrets) -> Tuple[Any, ...]:
        if self.spread_secrets and not isinstance(secrets, str):
            return tuple(secrets)
        return (secrets,)

    def contribute(self, transcript: str, identity: str, secrets: Secrets) -> Any:
        return self._contribute(transcript, identity, *self._args(secrets))

    def check_subgroup(self, transcript: str) -> bool:
        return bool(self._check_subgroup(transcript))

    def verify(self, transcript: str) -> bool:
        if self._verify is None:
            raise NotImplementedError("engine does not verify whole transcripts")
        return bool(self._verify(transcript))

    def derive_public_keys(self, secrets: Secrets) -> Any:
        if self._derive_public_keys is None:
            raise NotImplementedError("engine does not derive public keys")
        return self._derive_public_keys(*self._args(secrets))

    def init_threads(self, n: int) -> Any:
        if self._init_threads is None:
            return None
        return self._init_threads(n)


def load_engine(target: str, *, spread_secrets: bool = False) -> Any:
    """
    Resolve ``package.module:attr`` into an engine.

    ``attr`` may name an engine instance, a class or zero-argument factory
    returning one, or a submodule exporting engine functions. For the latter,
    ``spread_secrets`` selects the ``contribute(transcript, identity, s0, s1, ...)``
    calling convention (see :class:`FunctionEngine`); it has no effect on
    engine objects, which always receive the secrets as one argument.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name:
        raise EngineUnavailable(target, "expected 'package.module:attr'")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise EngineUnavailable(target, f"import failed: {e}") from e

    for part in filter(None, attr.split(".")):
        if isinstance(obj, types.ModuleType) and not hasattr(obj, part):
            try:
                obj = importlib.import_module(f"{obj.__name__}.{part}")
                continue
            except ImportError:
                pass
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise EngineUnavailable(target, f"no attribute {part!r}") from e

    if isinstance(obj, types.ModuleType):
        return FunctionEngine.from_module(obj, spread_secrets=spread_secrets)
    if inspect.isclass(obj) or (callable(obj) and not isinstance(obj, CryptoEngine)):
        try:
            obj = obj()
        except Exception as e:
            raise EngineUnavailable(target, f"factory failed: {e!r}") from e
    if not isinstance(obj, CryptoEngine):
        raise EngineUnavailable(target, f"{type(obj).__name__} lacks contribute/check_subgroup")
    return obj


# ---- detached engine calls ----


def _spawn(loop: asyncio.AbstractEventLoop, fn: Callable[..., Any], args: Tuple[Any, ...]) -> "asyncio.Future[Any]":
    fut: "asyncio.Future[Any]" = loop.create_future()

    def _settle(ok: bool, value: Any) -> None:
        if fut.done():
            return  # abandoned (timed out or cancelled)
        if ok:
            fut.set_result(value)
        else:
            fut.set_exception(value)

    def _run() -> None:
        try:
            value, ok = fn(*args), True
        except BaseException as e:
            value, ok = e, False
        try:
            loop.call_soon_threadsafe(_settle, ok, value)
        except RuntimeError:
            logger.debug("late result of %s dropped; event loop already closed", getattr(fn, "__name__", fn))

    threading.Thread(target=_run, name="pot-engine-call", daemon=True).start()
    return fut


async def call_detached(fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
    """
    Run ``fn(*args)`` on a fresh daemon thread and await its result.

    Raises ``asyncio.TimeoutError`` once ``timeout`` seconds pass. The thread
    cannot be stopped; it is left running and whatever it eventually returns
    is discarded. Unlike ``asyncio.to_thread`` nothing waits for it on
    ``asyncio.run`` teardown or at interpreter exit.
    """
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(_spawn(loop, fn, args), timeout=timeout)


# ---- once-per-process worker pool bootstrap ----

_BOOT_LOCK = threading.Lock()
# id(engine) -> (engine, pool size); the engine is kept alive so ids are never reused.
_BOOTSTRAPPED: Dict[int, Tuple[Any, int]] = {}


def default_concurrency() -> int:
    return os.cpu_count() or 1


def is_bootstrapped(engine: Any) -> bool:
    return id(engine) in _BOOTSTRAPPED


def bootstrap_engine(engine: Any, concurrency: Optional[int] = None) -> int:
    """
    Initialize the engine's worker pool once per process and return its size.

    Later calls are no-ops returning the size chosen the first time. Engines
    without ``init_threads`` are recorded as bootstrapped without a call.
    """
    with _BOOT_LOCK:
        done = _BOOTSTRAPPED.get(id(engine))
        if done is not None:
            return done[1]

        n = concurrency or default_concurrency()
        init = getattr(engine, "init_threads", None)
        if callable(init):
            try:
                init(n)
            except Exception as e:
                raise EngineFailure("bootstrap", e) from e
            logger.info("engine worker pool initialized with %d threads", n)
        _BOOTSTRAPPED[id(engine)] = (engine, n)
        return n
