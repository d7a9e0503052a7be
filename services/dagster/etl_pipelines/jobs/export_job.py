"""Layer export job (op-based)."""

from dagster import job

from ..ops import export_layer


@job(
    name="export_layer_job",
    description="Writes the stored features of a layer as SHP, GeoJSON, KML or DXF",
    tags={"kind": "export"},
)
def export_layer_job():
    """
    Export job triggered by the job trigger sensor.

    The trigger ({"jobId", "layerCode", "format"}) is passed as an op input
    to export_layer via run config.
    """
    export_layer()
