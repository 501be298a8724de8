"""Save storage backends and the autosave manager.

Stores implement a small key-value contract (get, put, delete). Writes from
save_async() run on a single background worker so the game loop never waits
on storage; their outcome is reported back on the caller's thread through
poll().
"""
import logging
import queue
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tycoon.config import Config
from tycoon.events import SAVE_COMPLETED, SAVE_FAILED, make_event
from tycoon.models import Base, SaveSlot
from tycoon.persistence import load_state, serialize_state

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A save store could not complete an operation."""


class StorageFullError(StorageError):
    """The save store has run out of space."""


class MemorySaveStore:
    """In-process store. An optional byte quota makes writes fail when full."""

    def __init__(self, capacity_bytes=None):
        self.capacity_bytes = capacity_bytes
        self._slots = {}

    def get(self, key):
        return self._slots.get(key)

    def put(self, key, payload, version=None):
        if self.capacity_bytes is not None:
            used = sum(len(v) for k, v in self._slots.items() if k != key)
            if used + len(payload) > self.capacity_bytes:
                raise StorageFullError(f"Quota of {self.capacity_bytes} bytes exceeded")
        self._slots[key] = payload

    def delete(self, key):
        self._slots.pop(key, None)

    def keys(self):
        return list(self._slots)


class SqlSaveStore:
    """Store backed by the SaveSlot table through SQLAlchemy."""

    def __init__(self, database_uri):
        engine_options = {}
        if database_uri.startswith('sqlite') and ':memory:' in database_uri:
            # One shared connection so the worker thread sees the same database
            engine_options = {
                'poolclass': StaticPool,
                'connect_args': {'check_same_thread': False},
            }
        self.engine = create_engine(database_uri, **engine_options)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    def _raise_storage_error(self, error):
        message = str(error).lower()
        if 'full' in message or 'quota' in message:
            raise StorageFullError(str(error)) from error
        raise StorageError(str(error)) from error

    def get(self, key):
        try:
            with self.Session() as session:
                slot = session.get(SaveSlot, key)
                return slot.payload if slot else None
        except SQLAlchemyError as e:
            self._raise_storage_error(e)

    def put(self, key, payload, version=None):
        with self.Session() as session:
            try:
                slot = session.get(SaveSlot, key)
                if slot is None:
                    slot = SaveSlot(key=key)
                    session.add(slot)
                slot.payload = payload
                slot.version = version
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                self._raise_storage_error(e)

    def delete(self, key):
        with self.Session() as session:
            try:
                slot = session.get(SaveSlot, key)
                if slot is not None:
                    session.delete(slot)
                    session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                self._raise_storage_error(e)

    def describe(self, key):
        """Slot metadata without the payload, or None."""
        with self.Session() as session:
            slot = session.get(SaveSlot, key)
            return slot.to_dict() if slot else None

    def close(self):
        self.engine.dispose()


class SaveManager:
    """Writes and reads the single autosave slot plus an emergency snapshot."""

    def __init__(self, store, data_loader, config=None, event_bus=None, emergency_store=None):
        self.store = store
        self.data_loader = data_loader
        self.config = config or Config
        self.event_bus = event_bus
        self.emergency_store = emergency_store if emergency_store is not None else store
        self.slot_key = self.config.SAVE_SLOT_KEY
        self.emergency_key = self.config.EMERGENCY_SAVE_KEY
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='tycoon-save')
        self._results = queue.SimpleQueue()
        self._pending = []
        self.last_error = None

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _snapshot(self, state, now_ms):
        if now_ms is not None:
            state['last_saved'] = now_ms
            state['last_played'] = now_ms
        return serialize_state(state), state.get('version')

    def _write(self, payload, version):
        """Write a payload and return (ok, error message)."""
        try:
            self.store.put(self.slot_key, payload, version)
            return True, None
        except StorageFullError as e:
            logger.warning(f"Save storage is full: {e}")
            return False, f"storage full: {e}"
        except StorageError as e:
            logger.error(f"Save failed: {e}")
            return False, str(e)

    def _report(self, ok, error, size):
        if ok:
            self.last_error = None
            self._publish(make_event(SAVE_COMPLETED, size=size))
        else:
            self.last_error = error
            self._publish(make_event(SAVE_FAILED, error=error))

    def save(self, state, now_ms=None):
        """Write the state synchronously.

        Returns:
            True on success. Failures are logged and published as save_failed.
        """
        payload, version = self._snapshot(state, now_ms)
        ok, error = self._write(payload, version)
        self._report(ok, error, len(payload))
        return ok

    def save_async(self, state, now_ms=None):
        """Serialize now and write on the background worker.

        The result is reported by the next poll() on the calling thread.

        Returns:
            concurrent.futures.Future resolving to True/False.
        """
        payload, version = self._snapshot(state, now_ms)

        def write():
            ok, error = self._write(payload, version)
            self._results.put((ok, error, len(payload)))
            return ok

        future = self._executor.submit(write)
        self._pending = [f for f in self._pending if not f.done()] + [future]
        return future

    def poll(self):
        """Publish outcomes of finished background saves. Returns how many."""
        handled = 0
        while True:
            try:
                ok, error, size = self._results.get_nowait()
            except queue.Empty:
                return handled
            self._report(ok, error, size)
            handled += 1

    def flush(self, timeout=None):
        """Wait for queued background saves, then report them."""
        for future in self._pending:
            future.result(timeout=timeout)
        self._pending = []
        self.poll()

    def emergency_save(self, state, now_ms=None):
        """Best-effort snapshot on teardown. Never raises."""
        try:
            payload, version = self._snapshot(state, now_ms)
            self.emergency_store.put(self.emergency_key, payload, version)
            return True
        except StorageError as e:
            logger.debug(f"Emergency snapshot skipped: {e}")
            return False

    def load(self):
        """Load the newest of the autosave and the emergency snapshot.

        Corrupt documents are deleted so they are not loaded again.

        Returns:
            Tuple (state or None, status) as returned by load_state().
        """
        sources = [(self.store, self.slot_key), (self.emergency_store, self.emergency_key)]
        candidates = []
        final_status = 'missing'
        for store, key in sources:
            try:
                raw = store.get(key)
            except StorageError as e:
                logger.error(f"Could not read save slot {key}: {e}")
                continue
            state, status = load_state(raw, self.data_loader)
            if state is not None:
                candidates.append((state.get('last_saved', 0), key, state, status))
            elif status == 'corrupt':
                final_status = 'corrupt'
                self._delete_quietly(store, key)

        if not candidates:
            return None, final_status
        # Ties go to the autosave, which comes first
        best = max(candidates, key=lambda c: c[0])
        if best[1] == self.emergency_key:
            logger.info("Recovered game from emergency snapshot")
        return best[2], best[3]

    def _delete_quietly(self, store, key):
        try:
            store.delete(key)
        except StorageError as e:
            logger.error(f"Could not delete save slot {key}: {e}")

    def delete(self):
        """Remove the autosave and the emergency snapshot."""
        self.flush()
        self._delete_quietly(self.store, self.slot_key)
        self._delete_quietly(self.emergency_store, self.emergency_key)

    def close(self):
        self.flush()
        self._executor.shutdown(wait=True)
