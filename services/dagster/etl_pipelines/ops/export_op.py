# =============================================================================
# Export Op - Layer Features to File
# =============================================================================
# Streams the stored features of one layer through the writer for the
# requested format and records the result location on the job.
# =============================================================================

from pathlib import Path
from typing import Any, Dict

from dagster import In, OpExecutionContext, Out, op

from libs.errors import EmptyLayer, ExportNotAllowed, LayerNotFound, PipelineError
from libs.job_tracker import JobLifecycleTracker
from libs.models import ExportFormat, ExportTrigger, Job, JobStatus, PipelineSettings
from libs.writers import WriterRegistry

from .import_op import unwrap_trigger

__all__ = ["export_layer", "export_file_name"]


def export_file_name(layer_code: str, job_id: str, export_format: ExportFormat) -> str:
    """
    Examples:
        >>> export_file_name("BAIRROS", "42", ExportFormat.KML)
        'export_BAIRROS_42.kml'
    """
    return f"export_{layer_code}_{job_id}.{export_format.extension}"


def _requested_format(trigger: ExportTrigger, job: Job) -> ExportFormat:
    if trigger.format is not None:
        return ExportFormat.parse(trigger.format)
    return ExportFormat.parse(job.parameters.get("format") or ExportFormat.GEOJSON)


def _run_export(
    mongodb,
    minio,
    trigger: ExportTrigger,
    settings: PipelineSettings,
    log,
) -> Dict[str, Any]:
    """
    Core logic for one export job.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        mongodb: MongoDBResource instance (jobs, layers, features)
        minio: MinIOResource instance (optional upload of the result)
        trigger: Parsed export trigger
        settings: Pipeline settings
        log: Logger instance (context.log)

    Returns:
        Summary dict with job_id, status, location and counters

    Raises:
        PipelineError: For job-fatal errors, after the job was marked FAILED
    """
    tracker = JobLifecycleTracker(mongodb)
    job = tracker.load(trigger.job_id)
    if job.status != JobStatus.PENDING:
        log.info(f"Job {job.job_id} is {job.status.value}; skipping")
        return {"job_id": job.job_id, "status": job.status.value, "skipped": True}

    tracker.start(job.job_id)
    try:
        export_format = _requested_format(trigger, job)
        log.info(f"Export job {job.job_id} started: layer {trigger.layer_code} as {export_format.value}")

        layer = mongodb.get_layer(trigger.layer_code)
        if layer is None:
            raise LayerNotFound(f"Layer {trigger.layer_code} is not configured")
        if not layer.exportable:
            raise ExportNotAllowed(f"Layer {layer.code} cannot be exported")

        filters = job.parameters.get("filters") or None
        total = mongodb.count_features(layer.code, filters)
        if total == 0:
            raise EmptyLayer(f"Layer {layer.code} has no features to export")

        export_dir = Path(job.parameters.get("output_location") or settings.export_dir)
        export_dir.mkdir(parents=True, exist_ok=True)
        target = export_dir / export_file_name(layer.code, job.job_id, export_format)

        writer = WriterRegistry.get_writer(export_format, layer_name=layer.code)
        result = writer.write(mongodb.iter_features(layer.code, filters), target)
        log.info(f"Wrote {result.written} of {total} features to {result.path}")

        location = str(result.path)
        if settings.upload_exports:
            location = minio.upload_export(str(result.path), f"exports/{result.path.name}")
            log.info(f"Uploaded export to {location}")

        finished = tracker.succeed(
            job.job_id,
            rows_processed=result.written,
            rows_skipped=result.skipped,
            location=location,
        )
    except Exception as exc:
        log.error(f"Export job {job.job_id} failed: {exc}")
        try:
            tracker.fail(job.job_id, exc)
        except PipelineError as fail_exc:
            log.warning(f"Could not mark job {job.job_id} as failed: {fail_exc}")
        raise

    return {
        "job_id": finished.job_id,
        "status": finished.status.value,
        "location": location,
        "rows_processed": result.written,
        "rows_skipped": result.skipped,
    }


@op(
    ins={"trigger": In(dagster_type=dict)},
    out=Out(dagster_type=dict),
    required_resource_keys={"mongodb", "minio"},
)
def export_layer(context: OpExecutionContext, trigger: dict) -> dict:
    """
    Export one layer in the requested format.

    Args:
        context: Dagster op execution context
        trigger: ``{"jobId": ..., "layerCode": ..., "format": ...}``

    Returns:
        Summary dict with the final job status and result location
    """
    return _run_export(
        mongodb=context.resources.mongodb,
        minio=context.resources.minio,
        trigger=ExportTrigger.model_validate(unwrap_trigger(trigger)),
        settings=PipelineSettings(),
        log=context.log,
    )
