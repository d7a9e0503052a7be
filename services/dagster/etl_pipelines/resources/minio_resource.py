# =============================================================================
# MinIO Resource - S3-Compatible Object Storage Operations
# =============================================================================
# Fetches uploaded source files referenced by s3:// job locations and
# publishes export results to the exports bucket.
# =============================================================================

from typing import Optional
from pathlib import Path

from dagster import ConfigurableResource
from minio import Minio
from minio.error import S3Error
from pydantic import Field

from libs.s3_utils import build_s3_path, parse_s3_path


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) operations.

    Provides methods for:
    - Downloading an uploaded source file into a job's scratch directory
    - Uploading export results to the exports bucket

    Configuration matches MinIOSettings from libs.models.config.

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        exports_bucket: Bucket for export results (default: "gis-exports")
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    exports_bucket: str = Field("gis-exports", description="Export results bucket")

    def get_client(self) -> Minio:
        """
        Create a MinIO client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def download_to(self, s3_path: str, local_dir: str) -> Path:
        """
        Download an object into a local directory, keeping its file name.

        Args:
            s3_path: Full S3 path (e.g., "s3://gis-uploads/jobs/42/postes.zip")
            local_dir: Directory to write into (created if missing)

        Returns:
            Path of the downloaded file

        Raises:
            RuntimeError: If the object does not exist
            S3Error: For other storage errors
        """
        bucket, key = parse_s3_path(s3_path)
        target = Path(local_dir) / Path(key).name
        target.parent.mkdir(parents=True, exist_ok=True)

        client = self.get_client()
        try:
            response = client.get_object(bucket, key)
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                raise RuntimeError(f"Object '{key}' not found in bucket '{bucket}'") from exc
            raise

        try:
            with open(target, "wb") as f:
                for chunk in response.stream(32 * 1024):  # 32KB chunks
                    f.write(chunk)
        finally:
            response.close()
            response.release_conn()
        return target

    def upload_export(self, local_path: str, key: str, content_type: Optional[str] = None) -> str:
        """
        Upload an export result to the exports bucket.

        Args:
            local_path: Path to the export file
            key: Destination object key
            content_type: MIME type (default: inferred from extension)

        Returns:
            S3 path of the uploaded object

        Raises:
            FileNotFoundError: If local_path doesn't exist
            S3Error: If upload fails
        """
        path = Path(local_path)
        if not path.exists():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        if content_type is None:
            content_type = self._infer_content_type(path.suffix)

        client = self.get_client()
        with open(path, "rb") as file_data:
            client.put_object(
                self.exports_bucket,
                key,
                file_data,
                length=path.stat().st_size,
                content_type=content_type,
            )
        return build_s3_path(self.exports_bucket, key)

    @staticmethod
    def _infer_content_type(suffix: str) -> str:
        """
        Infer MIME type from file extension.

        Args:
            suffix: File extension (e.g., ".geojson", ".dxf")

        Returns:
            MIME type string
        """
        content_types = {
            ".zip": "application/zip",
            ".geojson": "application/geo+json",
            ".json": "application/json",
            ".kml": "application/vnd.google-earth.kml+xml",
            ".dxf": "image/vnd.dxf",
        }

        return content_types.get(suffix.lower(), "application/octet-stream")
