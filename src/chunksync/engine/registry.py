# src/chunksync/engine/registry.py
"""HandlerRegistry: explicit hook -> handler map built at startup.

Every handler a runtime may dispatch to is registered under
"{sync_name}/{phase}" while the application is being wired. The registry
is then frozen; dispatch is a plain lookup, and an unregistered hook is
an error rather than a silent no-op.
"""

from __future__ import annotations

from chunksync.contracts import JobHandler, JobPhase, RegistryError, UnknownHookError

HOOK_SEPARATOR = "/"


def hook_name(sync_name: str, phase: JobPhase | str) -> str:
    """Build the hook name for a sync phase, e.g. "products/process_chunk"."""
    return f"{sync_name}{HOOK_SEPARATOR}{phase}"


class HandlerRegistry:
    """Maps (sync name, phase) to the handler the runtime calls."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._frozen = False

    def register(self, sync_name: str, phase: JobPhase | str, handler: JobHandler) -> str:
        """Register `handler` for a sync phase.

        Returns:
            The hook name the handler is registered under

        Raises:
            RegistryError: If the registry is frozen, the name is invalid,
                or the hook already has a handler
        """
        if self._frozen:
            raise RegistryError(f"Cannot register '{sync_name}/{phase}': registry is frozen")
        if not sync_name or HOOK_SEPARATOR in sync_name:
            raise RegistryError(f"Invalid sync name {sync_name!r}: must be non-empty and must not contain '{HOOK_SEPARATOR}'")
        hook = hook_name(sync_name, phase)
        if hook in self._handlers:
            raise RegistryError(f"Hook '{hook}' is already registered")
        self._handlers[hook] = handler
        return hook

    def freeze(self) -> None:
        """Finish startup wiring. No registrations are accepted afterwards."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, hook: str) -> JobHandler:
        """Handler registered for `hook`.

        Raises:
            UnknownHookError: If nothing is registered under `hook`
        """
        try:
            return self._handlers[hook]
        except KeyError:
            raise UnknownHookError(hook) from None

    def hooks(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, hook: object) -> bool:
        return hook in self._handlers
