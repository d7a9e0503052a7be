# =============================================================================
# Import Op - Source File to Layer Sinks
# =============================================================================
# Parses an uploaded source file, normalizes every record into the job's
# target SRID and routes it to local storage or the downstream service.
# Row-level problems are counted; job-level problems fail the job.
# =============================================================================

import shutil
import tempfile
from contextlib import ExitStack
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dagster import In, OpExecutionContext, Out, op
from shapely.errors import GEOSException

from libs.errors import InvalidInput, LayerNotFound, ParseError, PipelineError
from libs.job_tracker import JobLifecycleTracker
from libs.models import (
    BusinessTarget,
    FormatKind,
    ImportTrigger,
    JobStatus,
    LayerConfig,
    ParsedRecord,
    PipelineSettings,
    Sink,
)
from libs.parsers import ImportErrorLog, ParserRegistry
from libs.routing import BatchPublisher, BusinessRouter
from libs.s3_utils import is_s3_path
from libs.spatial_utils import (
    CoordinateNormalizer,
    RepairOutcome,
    classify,
    repair_geometry,
    resolve_archive_members,
)

__all__ = ["import_layer", "ImportTally"]


@dataclass
class ImportTally:
    """Per-job record counters."""

    processed: int = 0
    skipped: int = 0
    batches_published: int = 0


def _materialize_source(minio, location: Optional[str], scratch_dir: Path, log) -> Path:
    """
    Make the job's source file available locally.

    ``s3://`` locations are downloaded into the scratch directory; anything
    else is treated as a local path.
    """
    if not location:
        raise InvalidInput("Job has no source location")
    if is_s3_path(location):
        log.info(f"Downloading source {location}")
        return minio.download_to(location, str(scratch_dir))
    path = Path(location)
    if not path.is_file():
        raise InvalidInput(f"Source file not found: {location}")
    return path


def _resolve_source(source: Path, scratch_dir: Path, log) -> Tuple[Path, FormatKind]:
    """Classify the source and, for archives, pick the primary member."""
    kind = classify(source)
    if kind != FormatKind.ARCHIVE:
        return source, kind
    members = resolve_archive_members(source, scratch_dir / "members")
    log.info(f"Archive {source.name}: using {members.kind.value} member {members.primary.name}")
    return members.primary, members.kind


def _prepare_record(
    record: ParsedRecord,
    normalizer: CoordinateNormalizer,
    repair: bool,
) -> ParsedRecord:
    record = normalizer.normalize(record)
    if repair:
        geometry, outcome = repair_geometry(record.geometry, record.source_id)
        if outcome == RepairOutcome.REPAIRED:
            record = replace(record, geometry=geometry)
    return record


def _import_records(
    mongodb,
    rabbitmq,
    job_id: str,
    layer: LayerConfig,
    path: Path,
    kind: FormatKind,
    settings: PipelineSettings,
    errors: ImportErrorLog,
    tally: ImportTally,
    log,
) -> None:
    parser = ParserRegistry.get_parser(kind, settings.swap_policy)
    normalizer = CoordinateNormalizer(layer.srid, settings.storage_srid)
    router = BusinessRouter(layer)

    with ExitStack() as stack:
        publisher = None
        if layer.business_target == BusinessTarget.DOWNSTREAM_SERVICE:
            send = stack.enter_context(rabbitmq.batch_sender(job_id, layer.code, source=path.name))
            publisher = BatchPublisher(send, batch_size=settings.batch_size)

        for record in parser.open(path, errors):
            try:
                record = _prepare_record(record, normalizer, settings.repair_geometries)
            except ParseError as exc:
                errors.add(record.row_index, exc.error_code, str(exc), exc.field)
                continue
            except GEOSException as exc:
                errors.add(record.row_index, "GEOMETRY_ERROR", str(exc), "geometry")
                continue

            routed = router.route(record)
            if routed is None:
                tally.skipped += 1
                continue

            if routed.sink == Sink.DOWNSTREAM:
                publisher.add(routed.payload)
            elif routed.sink == Sink.DISTRICT:
                mongodb.insert_district(dict(routed.payload, job_id=job_id))
            else:
                mongodb.insert_feature(dict(routed.payload, job_id=job_id))
            tally.processed += 1

        if publisher is not None:
            publisher.flush_remainder()
            tally.batches_published = publisher.batches_published
            log.info(
                f"Published {publisher.records_published} records in "
                f"{publisher.batches_published} batches"
            )

    log.info(f"Target SRID for job {job_id}: {normalizer.target_srid}")


def _run_import(
    mongodb,
    minio,
    rabbitmq,
    trigger: ImportTrigger,
    settings: PipelineSettings,
    log,
) -> Dict[str, Any]:
    """
    Core logic for one import job.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        mongodb: MongoDBResource instance (jobs, layers, sinks)
        minio: MinIOResource instance (s3:// sources)
        rabbitmq: RabbitMQResource instance (downstream batches)
        trigger: Parsed import trigger
        settings: Pipeline settings
        log: Logger instance (context.log)

    Returns:
        Summary dict with job_id, status and counters

    Raises:
        PipelineError: For job-fatal errors, after the job was marked FAILED
    """
    tracker = JobLifecycleTracker(mongodb)
    job = tracker.load(trigger.job_id)
    if job.status != JobStatus.PENDING:
        # Duplicate delivery, or another run already owns the job
        log.info(f"Job {job.job_id} is {job.status.value}; skipping")
        return {"job_id": job.job_id, "status": job.status.value, "skipped": True}

    tracker.start(job.job_id)
    log.info(f"Import job {job.job_id} started for layer {trigger.layer_code}")

    errors = ImportErrorLog()
    tally = ImportTally()
    if settings.scratch_dir:
        Path(settings.scratch_dir).mkdir(parents=True, exist_ok=True)
    scratch_dir = Path(tempfile.mkdtemp(prefix=f"import_{job.job_id}_", dir=settings.scratch_dir))
    try:
        layer = mongodb.get_layer(trigger.layer_code)
        if layer is None:
            raise LayerNotFound(f"Layer {trigger.layer_code} is not configured")

        source = _materialize_source(minio, job.location, scratch_dir, log)
        path, kind = _resolve_source(source, scratch_dir, log)
        log.info(f"Parsing {path.name} as {kind.value}")

        _import_records(
            mongodb, rabbitmq, job.job_id, layer, path, kind, settings, errors, tally, log
        )

        if errors.has_errors():
            log.warning(f"Job {job.job_id}: {errors.error_count} rows with errors")
        finished = tracker.succeed(
            job.job_id,
            rows_processed=tally.processed,
            rows_with_errors=errors.error_count,
            rows_skipped=tally.skipped,
            error_summary=errors.summary() if errors.has_errors() else None,
        )
    except Exception as exc:
        log.error(f"Import job {job.job_id} failed: {exc}")
        try:
            tracker.fail(
                job.job_id,
                exc,
                rows_processed=tally.processed,
                rows_with_errors=errors.error_count,
                rows_skipped=tally.skipped,
            )
        except PipelineError as fail_exc:
            log.warning(f"Could not mark job {job.job_id} as failed: {fail_exc}")
        raise
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)

    log.info(
        f"Import job {job.job_id} completed: {tally.processed} processed, "
        f"{errors.error_count} errors, {tally.skipped} skipped"
    )
    return {
        "job_id": finished.job_id,
        "status": finished.status.value,
        "rows_processed": tally.processed,
        "rows_with_errors": errors.error_count,
        "rows_skipped": tally.skipped,
        "batches_published": tally.batches_published,
    }


def unwrap_trigger(trigger: dict) -> dict:
    """Accept both the plain trigger dict and Dagster's ``{"value": ...}`` wrapping."""
    if "value" in trigger and isinstance(trigger.get("value"), dict):
        return trigger["value"]
    return trigger


@op(
    ins={"trigger": In(dagster_type=dict)},
    out=Out(dagster_type=dict),
    required_resource_keys={"mongodb", "minio", "rabbitmq"},
)
def import_layer(context: OpExecutionContext, trigger: dict) -> dict:
    """
    Import one uploaded layer file.

    The trigger is passed as an op input via run config by the
    job trigger sensor.

    Args:
        context: Dagster op execution context
        trigger: ``{"jobId": ..., "layerCode": ...}``

    Returns:
        Summary dict with the final job status and counters
    """
    return _run_import(
        mongodb=context.resources.mongodb,
        minio=context.resources.minio,
        rabbitmq=context.resources.rabbitmq,
        trigger=ImportTrigger.model_validate(unwrap_trigger(trigger)),
        settings=PipelineSettings(),
        log=context.log,
    )
