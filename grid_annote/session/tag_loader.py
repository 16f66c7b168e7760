# grid_annote/session/tag_loader.py
from __future__ import annotations

import itertools
import logging
import threading
from typing import Dict, List, Optional, Set

from PyQt5.QtCore import QObject, QThread, pyqtSignal

from ..correlation import AddressingScheme, correlate_tags
from ..domain import AnnotationPoint, GridShape, Tag, VideoTrack
from ..errors import CorrelationCancelled, GridAnnoteError
from ..graph_wire import decode_tags
from ..keys import derive_namespace_identity
from ..media_import import tracks_from_graph
from ..timeutils import duration_floor
from .graph_session import GraphSession

logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)


class CorrelationWorker(QObject):
    """
    Runs one correlation off the UI thread.

    cancel() may be called from any thread; the run stops before the next
    second and reports cancelled instead of finished.
    """

    # (track_key, job_id, points)
    finished = pyqtSignal(str, int, object)
    # (track_key, job_id)
    cancelled = pyqtSignal(str, int)
    # (track_key, job_id, message)
    failed = pyqtSignal(str, int, str)

    def __init__(
        self,
        track_key: str,
        job_id: int,
        namespace: str,
        duration_seconds: int,
        tags: List[Tag],
        shape: GridShape,
        scheme: AddressingScheme,
    ):
        super().__init__()
        self.track_key = track_key
        self.job_id = job_id
        self._namespace = namespace
        self._duration = duration_seconds
        self._tags = list(tags)
        self._shape = shape
        self._scheme = scheme
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    def is_cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self) -> None:
        try:
            points = correlate_tags(
                self._namespace,
                self._duration,
                self._tags,
                track_key=self.track_key,
                rows=self._shape.rows,
                columns=self._shape.columns,
                is_cancelled=self._cancel.is_set,
                scheme=self._scheme,
            )
        except CorrelationCancelled:
            self.cancelled.emit(self.track_key, self.job_id)
            return
        except GridAnnoteError as e:
            self.failed.emit(self.track_key, self.job_id, str(e))
            return

        if self._cancel.is_set():
            self.cancelled.emit(self.track_key, self.job_id)
            return
        self.finished.emit(self.track_key, self.job_id, points)


class _TrackJob:
    def __init__(self, track_key: str, namespace: str, duration_seconds: int, public_key: str):
        self.job_id = next(_job_ids)
        self.track_key = track_key
        self.namespace = namespace
        self.duration_seconds = duration_seconds
        self.public_key = public_key
        self.worker: Optional[CorrelationWorker] = None


class TagLoader(QObject):
    """
    Loads derived annotation points for video tracks.

    For each track with a namespace and a known duration: derive the
    namespace identity key, fetch its graph through the session, decode the
    tags and correlate them on a worker thread. Tracks are loaded once; a
    cancelled track (namespace change, video removed) may be loaded again.

    Results for tracks that were cancelled in the meantime are dropped.
    """

    # (track_key, points) - only when graph data was available
    points_ready = pyqtSignal(str, object)
    # (track_key, had_data)
    load_finished = pyqtSignal(str, bool)
    # list of VideoTrack from the catalog graph
    catalog_ready = pyqtSignal(object)
    loading_changed = pyqtSignal(bool)

    def __init__(
        self,
        session: GraphSession,
        shape: Optional[GridShape] = None,
        scheme: AddressingScheme = AddressingScheme.AUTO,
        use_threads: bool = True,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._session = session
        self._shape = shape or GridShape()
        self._scheme = AddressingScheme(scheme)
        self._use_threads = use_threads

        self._jobs: Dict[str, _TrackJob] = {}
        self._fetched: Set[str] = set()
        # public_key -> track keys waiting on that graph
        self._waiting: Dict[str, List[str]] = {}
        self._catalog_key: Optional[str] = None
        self._loading = False
        self._threads: List[QThread] = []

        self._session.graph_ready.connect(self._on_graph_ready)

    # ---------------- Public API ----------------

    def is_loading(self) -> bool:
        return bool(self._jobs)

    def is_fetched(self, track_key: str) -> bool:
        return track_key in self._fetched

    def set_shape(self, shape: GridShape) -> None:
        """New grid shape applies to tracks loaded from now on."""
        self._shape = shape

    def set_endpoint(self, endpoint: str) -> None:
        """Reconnect: drop all work and forget which tracks were fetched."""
        self._cancel_all()
        self._fetched.clear()
        self._session.configure(endpoint)
        self._update_loading()

    def load_track(self, track: VideoTrack, duration_seconds: float) -> bool:
        """
        Start loading derived points for a track. Returns False when the track
        has nothing to load (no namespace, no duration yet, already loaded or
        loading).
        """
        namespace = (track.namespace or "").strip()
        if not namespace:
            return False
        duration = duration_floor(duration_seconds)
        if duration <= 0:
            return False
        if track.key in self._fetched or track.key in self._jobs:
            return False

        identity = derive_namespace_identity(track.namespace)
        job = _TrackJob(track.key, track.namespace, duration, identity.public_key)
        self._jobs[track.key] = job

        waiters = self._waiting.setdefault(job.public_key, [])
        waiters.append(track.key)
        self._update_loading()
        if len(waiters) == 1:
            self._session.request_graph(job.public_key)
        return True

    def cancel_track(self, track_key: str) -> None:
        job = self._jobs.pop(track_key, None)
        self._fetched.discard(track_key)
        if job is None:
            return
        logger.debug(f"Cancelling tag load for {track_key}")
        if job.worker is not None:
            job.worker.cancel()
        waiters = self._waiting.get(job.public_key)
        if waiters and track_key in waiters:
            waiters.remove(track_key)
            if not waiters:
                del self._waiting[job.public_key]
                self._session.cancel(job.public_key)
        self._update_loading()

    def load_catalog(self, catalog_key: str) -> bool:
        if not catalog_key:
            return False
        self._catalog_key = catalog_key
        return self._session.request_graph(catalog_key)

    def shutdown(self, wait_ms: int = 2000) -> None:
        self._cancel_all()
        self._session.close()
        for thread in list(self._threads):
            thread.quit()
            thread.wait(wait_ms)
        self._update_loading()

    # ---------------- Graph responses ----------------

    def _on_graph_ready(self, public_key: str, graph) -> None:
        if self._catalog_key is not None and public_key == self._catalog_key:
            self._catalog_key = None
            tracks: List[VideoTrack] = tracks_from_graph(graph) if isinstance(graph, str) else []
            logger.info(f"Catalog graph listed {len(tracks)} video(s)")
            self.catalog_ready.emit(tracks)

        track_keys = self._waiting.pop(public_key, [])
        if not track_keys:
            return

        tags: List[Tag] = decode_tags(graph) if isinstance(graph, str) else []
        for track_key in track_keys:
            job = self._jobs.get(track_key)
            if job is None or job.public_key != public_key:
                continue
            if graph is None:
                self._complete(job, None)
                continue
            logger.debug(f"{len(tags)} tag(s) for {job.namespace!r}; correlating {job.duration_seconds}s")
            self._start_correlation(job, tags)

    def _start_correlation(self, job: _TrackJob, tags: List[Tag]) -> None:
        worker = CorrelationWorker(
            job.track_key, job.job_id, job.namespace, job.duration_seconds,
            tags, self._shape, self._scheme,
        )
        job.worker = worker
        worker.finished.connect(self._on_worker_finished)
        worker.cancelled.connect(self._on_worker_cancelled)
        worker.failed.connect(self._on_worker_failed)

        if not self._use_threads:
            worker.run()
            return

        thread = QThread(self)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(thread.quit)
        worker.cancelled.connect(thread.quit)
        worker.failed.connect(thread.quit)
        thread.finished.connect(worker.deleteLater)
        thread.finished.connect(lambda t=thread: self._forget_thread(t))
        thread.finished.connect(thread.deleteLater)
        self._threads.append(thread)
        thread.start()

    # ---------------- Worker results ----------------

    def _current_job(self, track_key: str, job_id: int) -> Optional[_TrackJob]:
        job = self._jobs.get(track_key)
        if job is None or job.job_id != job_id:
            return None
        return job

    def _on_worker_finished(self, track_key: str, job_id: int, points: List[AnnotationPoint]) -> None:
        job = self._current_job(track_key, job_id)
        if job is None:
            logger.debug(f"Dropping correlation result for stale track {track_key}")
            return
        self._complete(job, points)

    def _on_worker_cancelled(self, track_key: str, job_id: int) -> None:
        logger.debug(f"Correlation for {track_key} cancelled")

    def _on_worker_failed(self, track_key: str, job_id: int, message: str) -> None:
        job = self._current_job(track_key, job_id)
        if job is None:
            return
        logger.error(f"Correlation for {track_key} failed: {message}")
        self._jobs.pop(track_key, None)
        self._fetched.add(track_key)
        self.load_finished.emit(track_key, False)
        self._update_loading()

    # ---------------- Internals ----------------

    def _complete(self, job: _TrackJob, points: Optional[List[AnnotationPoint]]) -> None:
        self._jobs.pop(job.track_key, None)
        self._fetched.add(job.track_key)
        if points is not None:
            self.points_ready.emit(job.track_key, points)
        self.load_finished.emit(job.track_key, points is not None)
        self._update_loading()

    def _forget_thread(self, thread: QThread) -> None:
        if thread in self._threads:
            self._threads.remove(thread)

    def _cancel_all(self) -> None:
        for track_key in list(self._jobs.keys()):
            self.cancel_track(track_key)
        self._waiting.clear()
        self._catalog_key = None

    def _update_loading(self) -> None:
        loading = bool(self._jobs)
        if loading != self._loading:
            self._loading = loading
            self.loading_changed.emit(loading)
