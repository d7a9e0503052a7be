"""Layer import job (op-based)."""

from dagster import job

from ..ops import import_layer


@job(
    name="import_layer_job",
    description="Parses an uploaded layer file and routes its records to local storage or the downstream service",
    tags={"kind": "import"},
)
def import_layer_job():
    """
    Import job triggered by the job trigger sensor.

    The trigger ({"jobId", "layerCode"}) is passed as an op input to
    import_layer via run config.
    """
    import_layer()
