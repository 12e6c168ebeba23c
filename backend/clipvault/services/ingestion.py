"""
IngestionPipeline - the single path from request to catalog record.

Every accepted clip, upload or remote, flows through run():

1. RESOLVING    - SourceResolver yields a local file in the media root
2. PROBING      - best-effort ffprobe for codecs and embedded title
3. DECIDING     - normalize policy picks transcode or passthrough
4. TRANSCODING  - encode to <id>-canonical.mp4, verify by probing (fatal),
                  then delete the superseded source
   PASSTHROUGH  - the resolved source IS the final file, under its
                  existing name
5. CLEANING     - delete resolver temp artifacts (errors logged only)
6. COMMITTING   - build the MediaRecord and append it to the catalog
7. DONE

Any IngestionError moves the run to FAILED: every file this run created
(source, temp artifacts, partial or finished output) is removed before the
error is returned. A committed record always points at an existing file.

CONSTRAINTS:
- Job ids are UUIDv4 hex; all filenames derive from them
- The policy is fixed per pipeline instance, never per request
- No retries. Fail fast, clean up, let the caller resubmit
"""

import asyncio
import functools
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set, TYPE_CHECKING

from ..cleanup import discard, discard_all
from ..config import NormalizePolicy, Settings
from ..media.errors import Cancelled, IngestionError, InvalidInput, ProbeFailed, StorageFailed
from ..media.models import (
    CanonicalProfile,
    DEFAULT_PROFILE,
    MediaRecord,
    PipelineOutcome,
    ProbeResult,
    SourceKind,
    utc_now,
)
from ..sources.resolver import IngestRequest, ResolvedSource, SourceResolver, check_exclusive
from .state import PipelineState, is_terminal, validate_transition

if TYPE_CHECKING:
    from ..catalog.store import JsonCatalogStore
    from ..execution.probe import MediaProber
    from ..execution.transcoder import Transcoder

logger = logging.getLogger(__name__)


FALLBACK_LABELS = {
    SourceKind.UPLOAD: "Uploaded clip",
    SourceKind.REMOTE: "Remote clip",
}


def resolve_display_name(
    explicit_title: Optional[str],
    embedded_title: Optional[str],
    source_kind: Optional[SourceKind] = None,
    created_at: Optional[datetime] = None,
    filename: Optional[str] = None,
) -> str:
    """
    Pick a record's display name.

    Precedence:
        explicit caller title > embedded container title
        > "<kind label> <timestamp>" > filename stem > "Untitled clip"

    Blank strings count as absent. The result is never empty.
    """
    for candidate in (explicit_title, embedded_title):
        if candidate and candidate.strip():
            return candidate.strip()

    if source_kind is not None and created_at is not None:
        return f"{FALLBACK_LABELS[source_kind]} {created_at:%Y-%m-%d %H:%M:%S}"

    if filename:
        stem = Path(filename).stem.strip()
        if stem:
            return stem

    return "Untitled clip"


@dataclass
class IngestionJob:
    """
    Per-invocation working state.

    owned_paths holds every file this run is responsible for deleting if it
    fails. The final output is removed from it only by a successful commit.
    """

    id: str
    request: IngestRequest
    created_at: datetime = field(default_factory=utc_now)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    state: PipelineState = PipelineState.RESOLVING
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RESOLVING])
    source: Optional[ResolvedSource] = None
    probe: ProbeResult = field(default_factory=ProbeResult.empty)
    final_path: Optional[Path] = None
    owned_paths: Set[Path] = field(default_factory=set)

    def advance(self, to_state: PipelineState) -> None:
        validate_transition(self.state, to_state)
        logger.debug(f"[Ingest] {self.id}: {self.state.value} → {to_state.value}")
        self.state = to_state
        self.history.append(to_state)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def transcoded(self) -> bool:
        return PipelineState.TRANSCODING in self.history


class IngestionPipeline:
    """
    Orchestrates Resolver → Probe → (Transcoder) → cleanup → Catalog append.

    Collaborators are injected; from_settings() wires the real ones.
    run() blocks on external processes, so callers run it on a worker
    thread (see IngestionExecutor).
    """

    def __init__(
        self,
        resolver: SourceResolver,
        prober: "MediaProber",
        transcoder: "Transcoder",
        catalog: "JsonCatalogStore[MediaRecord]",
        media_root: Path,
        policy: NormalizePolicy = NormalizePolicy.IF_NEEDED,
        public_prefix: str = "/files",
        profile: CanonicalProfile = DEFAULT_PROFILE,
    ):
        """
        Initialize the pipeline.

        Args:
            resolver: Produces the local source file for a request
            prober: Inspects sources and transcoded outputs
            transcoder: Encodes sources to the canonical profile
            catalog: Record store appended to on success
            media_root: Directory of final media files (served publicly)
            policy: ALWAYS or IF_NEEDED normalization
            public_prefix: URL prefix the media root is served under
            profile: Canonical target profile
        """
        self.resolver = resolver
        self.prober = prober
        self.transcoder = transcoder
        self.catalog = catalog
        self.media_root = Path(media_root)
        self.policy = policy
        self.public_prefix = public_prefix.rstrip("/")
        self.profile = profile

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: Optional["JsonCatalogStore[MediaRecord]"] = None,
    ) -> "IngestionPipeline":
        from ..catalog.store import JsonCatalogStore
        from ..execution.probe import MediaProber
        from ..execution.transcoder import Transcoder

        return cls(
            resolver=SourceResolver.from_settings(settings),
            prober=MediaProber(settings.ffprobe_path, timeout=settings.probe_timeout),
            transcoder=Transcoder(settings.ffmpeg_path, timeout=settings.transcode_timeout),
            catalog=catalog if catalog is not None else JsonCatalogStore(settings.catalog_path, MediaRecord),
            media_root=settings.media_root,
            policy=settings.normalize_policy,
            public_prefix=settings.public_prefix,
        )

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def new_job_id(self) -> str:
        return uuid.uuid4().hex

    def run(
        self,
        request: IngestRequest,
        job_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineOutcome:
        """
        Run one ingestion to completion.

        Args:
            request: Upload or remote URL, plus optional title. Ownership of
                an upload file passes to the pipeline.
            job_id: Pre-generated id (the HTTP layer names uploads with it)
            cancel_event: Set by the caller if the inbound request is aborted

        Returns:
            PipelineOutcome with the committed record or the typed error
        """
        job = IngestionJob(
            id=job_id or self.new_job_id(),
            request=request,
            cancel_event=cancel_event or threading.Event(),
        )

        # Contradictory requests are rejected before the pipeline owns anything
        try:
            check_exclusive(request.upload is not None, request.remote_url)
        except InvalidInput as e:
            logger.warning(f"[Ingest] {job.id}: rejected: {e.details}")
            return PipelineOutcome(job_id=job.id, error=e)

        if request.upload is not None:
            job.owned_paths.add(Path(request.upload.path))

        logger.info(
            f"[Ingest] {job.id}: start "
            f"({'upload' if request.upload is not None else 'remote'}, policy={self.policy.value})"
        )

        try:
            record = self._execute(job)
        except IngestionError as e:
            self._fail(job, e)
            return PipelineOutcome(job_id=job.id, error=e)
        except Exception as e:
            logger.exception(f"[Ingest] {job.id}: unexpected failure in {job.state.value}: {e}")
            self._fail(job, e)
            raise

        logger.info(f"[Ingest] {job.id}: done → {record.relative_url} ({'transcoded' if job.transcoded else 'passthrough'})")
        return PipelineOutcome(job_id=job.id, record=record)

    def ingest(self, request: IngestRequest, **kwargs) -> MediaRecord:
        """
        Run and return the record.

        Raises:
            IngestionError: The run's typed failure
        """
        return self.run(request, **kwargs).unwrap()

    # =========================================================================
    # DECISION POINTS
    # =========================================================================

    def should_transcode(self, probe: ProbeResult) -> bool:
        """ALWAYS: yes. IF_NEEDED: only when the source misses the canonical codec pair."""
        if self.policy == NormalizePolicy.ALWAYS:
            return True
        return not probe.matches(self.profile)

    def relative_url_for(self, final_path: Path) -> str:
        return f"{self.public_prefix}/{final_path.name}"

    # =========================================================================
    # STAGES
    # =========================================================================

    def _checkpoint(self, job: IngestionJob) -> None:
        """Abort between stages if the caller went away. In-flight tools are never killed."""
        if job.cancelled:
            raise Cancelled(f"Request aborted during {job.state.value}; outputs discarded")

    def _execute(self, job: IngestionJob) -> MediaRecord:
        # 1. RESOLVING
        source = self.resolver.resolve(job.request, job.id)
        job.source = source
        job.owned_paths.add(source.local_path)
        job.owned_paths.update(source.temp_artifacts)
        self._checkpoint(job)

        # 2. PROBING (best effort)
        job.advance(PipelineState.PROBING)
        job.probe = self._probe_source(job, source.local_path)
        if job.probe.is_empty:
            logger.info(f"[Ingest] {job.id}: no stream metadata, codecs treated as non-canonical")

        # 3. DECIDING
        job.advance(PipelineState.DECIDING)
        self._checkpoint(job)
        if self.should_transcode(job.probe):
            job.advance(PipelineState.TRANSCODING)
            final_path = self._transcode(job, source)
        else:
            job.advance(PipelineState.PASSTHROUGH)
            final_path = source.local_path
            job.final_path = final_path
            logger.info(
                f"[Ingest] {job.id}: passthrough, source already "
                f"{self.profile.video_codec}/{self.profile.audio_codec}"
            )
        self._checkpoint(job)

        # 5. CLEANING
        job.advance(PipelineState.CLEANING)
        leftovers = discard_all(source.temp_artifacts, reason="temp artifact")
        if leftovers:
            logger.warning(f"[Ingest] {job.id}: {len(leftovers)} temp artifact(s) left behind: {leftovers}")
        job.owned_paths.difference_update(source.temp_artifacts)

        # 6. COMMITTING
        job.advance(PipelineState.COMMITTING)
        self._checkpoint(job)
        record = self._commit(job, source, final_path)

        job.advance(PipelineState.DONE)
        return record

    def _probe_source(self, job: IngestionJob, path: Path) -> ProbeResult:
        try:
            return self.prober.probe(path)
        except ProbeFailed as e:
            logger.warning(f"[Ingest] {job.id}: source probe failed, continuing without metadata: {e.details}")
            return ProbeResult.empty()

    def _transcode(self, job: IngestionJob, source: ResolvedSource) -> Path:
        final_path = self.media_root / self.profile.final_name(job.id)
        job.final_path = final_path
        job.owned_paths.add(final_path)

        self.transcoder.transcode(source.local_path, final_path)

        # Post-transcode probe is fatal: an unreadable output must not be committed
        self.prober.probe(final_path)

        # Superseded source goes only after the output is confirmed
        if discard(source.local_path, reason="superseded source"):
            job.owned_paths.discard(source.local_path)
        else:
            logger.warning(f"[Ingest] {job.id}: superseded source {source.local_path} left behind")
        return final_path

    def _commit(self, job: IngestionJob, source: ResolvedSource, final_path: Path) -> MediaRecord:
        if not final_path.is_file():
            raise StorageFailed(f"Final file disappeared before commit: {final_path.name}")

        record = MediaRecord(
            id=job.id,
            display_name=resolve_display_name(
                job.request.title,
                job.probe.title,
                source.source_kind,
                job.created_at,
                source.original_name,
            ),
            relative_url=self.relative_url_for(final_path),
            created_at=job.created_at,
            source_kind=source.source_kind,
            codec_tags=dict(job.probe.format_tags) or None,
        )
        self.catalog.append(record)
        job.owned_paths.discard(final_path)
        return record

    def _fail(self, job: IngestionJob, error: BaseException) -> None:
        """Terminal FAILED: remove every file this run still owns. Deletion errors are logged only."""
        failed_in = job.state
        if not is_terminal(job.state):
            job.advance(PipelineState.FAILED)

        leftovers = discard_all(sorted(job.owned_paths), reason=f"failed ingestion {job.id}")
        if leftovers:
            logger.warning(f"[Ingest] {job.id}: could not remove {leftovers}")
        job.owned_paths.clear()

        kind = getattr(getattr(error, "kind", None), "value", type(error).__name__)
        logger.error(f"[Ingest] {job.id}: FAILED in {failed_in.value} ({kind}): {error}")


class IngestionExecutor:
    """
    Bounded worker pool for pipeline runs.

    Each run blocks a worker thread on external processes; many runs proceed
    concurrently up to max_workers. Callers await exactly one outcome.
    If the awaiting caller is cancelled, the run keeps going on its thread
    and is steered into the FAILED cleanup path instead of committing.
    """

    def __init__(self, pipeline: IngestionPipeline, max_workers: int = 4):
        self.pipeline = pipeline
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ingest")

    async def submit(self, request: IngestRequest, job_id: Optional[str] = None) -> PipelineOutcome:
        cancel_event = threading.Event()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self._pool,
            functools.partial(self.pipeline.run, request, job_id=job_id, cancel_event=cancel_event),
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            cancel_event.set()
            logger.warning(f"[Ingest] {job_id or 'job'}: caller cancelled, run will be discarded")
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
