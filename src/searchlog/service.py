"""Search logger service: wires buffer, writer, endpoint and listener together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .buffer import RecentQueryBuffer
from .config import MAX_RECENT, SearchLogConfig, validate_port
from .listener import BindFailure, ListenerManager, ListenerState
from .paths import validate_log_file_name
from .server import IngestEndpoint, create_app
from .store import DocumentStore, VaultStore
from .writer import LogWriter

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """What apply_settings actually did.

    config holds the effective settings: any field that failed validation
    or could not be applied keeps its previous value.
    """

    config: SearchLogConfig
    errors: list[str] = field(default_factory=list)
    note_created: bool = False
    rebound: bool = False
    bind_failure: Optional[BindFailure] = None

    @property
    def ok(self) -> bool:
        return not self.errors


class SearchLogService:
    """Runs the ingestion endpoint for one vault.

    Settings are applied by rebuilding components: a new LogWriter for a
    new note or write mode, a rebind for a new port. The recent-query
    buffer survives every change.
    """

    def __init__(self, config: SearchLogConfig, store: Optional[DocumentStore] = None):
        """Initialize service.

        Args:
            config: Initial settings
            store: Vault store (default: VaultStore over config.vault_path)
        """
        self.config = config
        self.store: DocumentStore = store if store is not None else VaultStore(config.vault_path)
        self.buffer = RecentQueryBuffer(MAX_RECENT)
        self.endpoint = IngestEndpoint(self.buffer, self._build_writer(config))
        self.app = create_app(self.endpoint)
        self.listener = ListenerManager(self.app, host=config.host)

    def _build_writer(self, config: SearchLogConfig) -> LogWriter:
        return LogWriter(
            self.store,
            config.log_file_name,
            prepend_mode=config.prepend_mode,
            serialize_commits=config.serialize_commits,
        )

    @property
    def writer(self) -> LogWriter:
        return self.endpoint.writer

    @property
    def is_listening(self) -> bool:
        return self.listener.state is ListenerState.BOUND

    async def start(self) -> list[str]:
        """Validate settings, create the note if needed and start listening.

        Validation problems are reported, not raised: an invalid note name
        skips note creation, and the listener is still started so that a
        later settings change can fix things without a restart.

        Returns:
            Warning messages (empty when everything is fine)
        """
        warnings: list[str] = []

        note_error = await validate_log_file_name(self.store, self.config.log_file_name)
        if note_error:
            warnings.append(note_error)
            logger.warning(f"SearchLogger: {note_error}")
        else:
            try:
                await self.writer.init_note()
            except (OSError, ValueError) as e:
                message = f"Failed to create {self.config.log_file_name}: {e}"
                warnings.append(message)
                logger.error(f"SearchLogger: {message}")

        port_error = validate_port(self.config.port)
        if port_error:
            warnings.append(port_error)
            logger.warning(f"SearchLogger: {port_error}")

        failure = await self.listener.start(self.config.port)
        if failure is not None:
            warnings.append(failure.describe())
        return warnings

    async def stop(self) -> None:
        await self.listener.stop()

    async def apply_settings(self, new_config: SearchLogConfig) -> ApplyResult:
        """Apply changed settings without restarting the service.

        Each field is validated before anything is touched; a field that
        fails validation keeps its old value while valid fields still apply.
        A failed rebind keeps the old port (the listener rolls back).
        """
        current = self.config
        result = ApplyResult(config=current)
        updates: dict = {}

        note_changed = new_config.log_file_name != current.log_file_name
        if note_changed:
            note_error = await validate_log_file_name(self.store, new_config.log_file_name)
            if note_error:
                result.errors.append(note_error)
                note_changed = False
            else:
                try:
                    result.note_created = await LogWriter(self.store, new_config.log_file_name).init_note()
                except (OSError, ValueError) as e:
                    result.errors.append(f"Failed to create {new_config.log_file_name}: {e}")
                    note_changed = False
                else:
                    updates["log_file_user_pref"] = new_config.log_file_user_pref

        mode_changed = (
            new_config.prepend_mode != current.prepend_mode
            or new_config.serialize_commits != current.serialize_commits
        )
        if mode_changed:
            updates["prepend_mode"] = new_config.prepend_mode
            updates["serialize_commits"] = new_config.serialize_commits

        if note_changed or mode_changed:
            candidate = current.model_copy(update=updates)
            self.endpoint.replace_writer(self._build_writer(candidate))
            logger.info(
                f"Logging to {candidate.log_file_name} "
                f"({'prepend' if candidate.prepend_mode else 'append'} mode)"
            )

        if new_config.port != current.port or not self.is_listening:
            port_error = validate_port(new_config.port)
            if port_error:
                result.errors.append(port_error)
            else:
                rebind = await self.listener.rebind(new_config.port)
                if rebind.ok:
                    updates["port"] = new_config.port
                    result.rebound = True
                else:
                    result.bind_failure = rebind.failure
                    result.errors.append(rebind.failure.describe())
                    if rebind.rollback_failure is not None:
                        result.errors.append(rebind.rollback_failure.describe())

        self.config = current.model_copy(update=updates)
        result.config = self.config
        return result
