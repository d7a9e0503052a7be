# =============================================================================
# Unit Tests: Export Writers
# =============================================================================

import json
import xml.etree.ElementTree as ET
import zipfile

import ezdxf
import fiona
import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from libs.errors import UnsupportedFormat, UnsupportedProjection
from libs.models import ExportFeature, ExportFormat
from libs.parsers import GeoJsonParser, ImportErrorLog
from libs.writers import (
    DxfWriter,
    GeoJsonWriter,
    KmlWriter,
    ShapefileWriter,
    WriterRegistry,
)

KML_NS = "{http://www.opengis.net/kml/2.2}"


def _square(x, y, size=100.0):
    return Polygon([(x, y), (x + size, y), (x + size, y + size), (x, y + size)])


def _feature(geometry, fid="1", external_id="E-1", srid=31984):
    return ExportFeature(id=fid, external_id=external_id, geometry=geometry, srid=srid)


POINTS = [
    _feature(Point(360000.123456789, 7750000.0), "1", "P1"),
    _feature(Point(360100.0, 7750100.0), "2", None),
]


# =============================================================================
# Test: GeoJsonWriter
# =============================================================================

class TestGeoJsonWriter:
    def test_projected_collection_declares_crs(self, tmp_path):
        result = GeoJsonWriter().write(POINTS, tmp_path / "postes.geojson")
        document = json.loads(result.path.read_text(encoding="utf-8"))

        assert result.written == 2
        assert document["type"] == "FeatureCollection"
        assert document["crs"]["properties"]["name"] == "urn:ogc:def:crs:EPSG::31984"
        first = document["features"][0]
        assert first["properties"] == {"id": "1", "externalId": "P1"}
        assert first["geometry"]["coordinates"] == [360000.12345679, 7750000.0]
        assert document["features"][1]["properties"]["externalId"] is None

    def test_geographic_collection_has_no_crs(self, tmp_path):
        features = [_feature(Point(-40.3, -20.3), srid=4326)]
        document = json.loads(GeoJsonWriter().write(features, tmp_path / "a.geojson").path.read_text())
        assert "crs" not in document

    def test_mixed_srids_reprojected_to_first(self, tmp_path):
        features = [POINTS[0], _feature(Point(-40.3, -20.3), "3", srid=4326)]
        document = json.loads(GeoJsonWriter().write(features, tmp_path / "a.geojson").path.read_text())
        x, _ = document["features"][1]["geometry"]["coordinates"]
        assert x > 100000

    def test_empty_collection(self, tmp_path):
        result = GeoJsonWriter().write([], tmp_path / "vazio.geojson")
        assert json.loads(result.path.read_text()) == {"type": "FeatureCollection", "features": []}
        assert result.written == 0

    def test_reimport_preserves_ids_and_coordinates(self, tmp_path):
        features = [
            _feature(Point(360000.123456789, 7750000.5), "1", "P1"),
            _feature(_square(360200.0, 7750200.0), "2", "B-1"),
        ]
        path = GeoJsonWriter().write(features, tmp_path / "ida.geojson").path

        errors = ImportErrorLog()
        records = list(GeoJsonParser().open(path, errors))

        assert not errors.has_errors()
        assert [r.source_id for r in records] == ["P1", "B-1"]
        assert all(r.srid == 31984 for r in records)
        assert records[0].geometry.equals_exact(features[0].geometry, 1e-6)
        assert records[1].geometry.equals_exact(features[1].geometry, 1e-6)

    def test_failure_removes_partial_file(self, tmp_path):
        features = [POINTS[0], _feature(Point(1, 1), "9", srid=999999)]
        path = tmp_path / "broken.geojson"
        with pytest.raises(UnsupportedProjection):
            GeoJsonWriter().write(features, path)
        assert not path.exists()


# =============================================================================
# Test: ShapefileWriter
# =============================================================================

class TestShapefileWriter:
    def test_zip_contains_geometry_set(self, tmp_path):
        path = tmp_path / "postes.zip"
        result = ShapefileWriter().write(POINTS, path)

        assert result.written == 2
        with zipfile.ZipFile(path) as bundle:
            names = set(bundle.namelist())
            assert {"postes.shp", "postes.shx", "postes.dbf", "postes.prj"} <= names
            bundle.extractall(tmp_path / "out")

        with fiona.open(str(tmp_path / "out" / "postes.shp")) as collection:
            rows = list(collection)
            assert collection.schema["geometry"] == "Point"
        assert rows[0].properties["externalId"] == "P1"
        assert [row.properties["id"] for row in rows] == ["1", "2"]
        assert not list(tmp_path.glob("postes_*"))

    def test_other_families_skipped(self, tmp_path):
        features = POINTS + [_feature(LineString([(0, 0), (1, 1)]), "3")]
        result = ShapefileWriter().write(features, tmp_path / "mix.zip")
        assert result.written == 2
        assert result.skipped == 1

    def test_polygon_layer_accepts_multipolygons(self, tmp_path):
        features = [
            _feature(_square(0, 0), "1"),
            _feature(MultiPolygon([_square(200, 0), _square(400, 0)]), "2"),
        ]
        result = ShapefileWriter().write(features, tmp_path / "bairros.zip")
        assert (result.written, result.skipped) == (2, 0)

    def test_empty_input_rejected(self, tmp_path):
        path = tmp_path / "vazio.zip"
        with pytest.raises(ValueError):
            ShapefileWriter().write([], path)
        assert not path.exists()


# =============================================================================
# Test: KmlWriter
# =============================================================================

class TestKmlWriter:
    def test_placemarks_in_geographic_coordinates(self, tmp_path):
        features = [POINTS[0], _feature(_square(360000, 7750000), "2", "B-1")]
        result = KmlWriter(document_name="POSTES").write(features, tmp_path / "postes.kml")

        assert result.written == 2
        root = ET.parse(result.path).getroot()
        placemarks = list(root.iter(f"{KML_NS}Placemark"))
        assert [p.find(f"{KML_NS}name").text for p in placemarks] == ["P1", "B-1"]

        coordinates = placemarks[0].find(f".//{KML_NS}coordinates").text.strip()
        lon, lat = (float(v) for v in coordinates.split(",")[:2])
        assert -42 < lon < -39
        assert -22 < lat < -19
        assert root.find(f".//{KML_NS}Document/{KML_NS}name").text == "POSTES"

    def test_multi_kinds_skipped(self, tmp_path):
        features = [_feature(MultiPolygon([_square(360000, 7750000)]), "1")]
        result = KmlWriter().write(features, tmp_path / "a.kml")
        assert (result.written, result.skipped) == (0, 1)


# =============================================================================
# Test: DxfWriter
# =============================================================================

class TestDxfWriter:
    def test_multipolygon_becomes_closed_polylines(self, tmp_path):
        features = [_feature(MultiPolygon([_square(0, 0), _square(200, 0)]))]
        result = DxfWriter(layer_name="BAIRROS").write(features, tmp_path / "bairros.dxf")

        assert result.written == 1
        doc = ezdxf.readfile(str(result.path))
        polylines = list(doc.modelspace().query("LWPOLYLINE"))
        assert len(polylines) == 2
        assert all(p.closed for p in polylines)
        assert all(len(p) == 4 for p in polylines)
        assert {p.dxf.layer for p in polylines} == {"BAIRROS"}

    def test_points_and_lines(self, tmp_path):
        features = [
            POINTS[0],
            _feature(LineString([(0, 0), (10, 0)]), "2"),
            _feature(LineString([(0, 0), (10, 0), (10, 10)]), "3"),
        ]
        doc = ezdxf.readfile(str(DxfWriter().write(features, tmp_path / "a.dxf").path))
        msp = doc.modelspace()
        assert len(msp.query("POINT")) == 1
        assert len(msp.query("LINE")) == 1
        polyline = msp.query("LWPOLYLINE").first
        assert not polyline.closed

    def test_polygon_hole_is_its_own_ring(self, tmp_path):
        holed = Polygon(_square(0, 0).exterior.coords, [[(10, 10), (20, 10), (20, 20), (10, 20)]])
        doc = ezdxf.readfile(str(DxfWriter().write([_feature(holed)], tmp_path / "a.dxf").path))
        assert len(doc.modelspace().query("LWPOLYLINE")) == 2

    def test_invalid_layer_characters_replaced(self, tmp_path):
        writer = DxfWriter(layer_name="rede/baixa")
        assert writer.layer_name == "rede_baixa"


# =============================================================================
# Test: WriterRegistry
# =============================================================================

class TestWriterRegistry:
    @pytest.mark.parametrize(
        "fmt, writer_class",
        [
            ("SHP", ShapefileWriter),
            ("shapefile", ShapefileWriter),
            ("json", GeoJsonWriter),
            (ExportFormat.GEOJSON, GeoJsonWriter),
            ("KML", KmlWriter),
            ("dxf", DxfWriter),
        ],
    )
    def test_lookup(self, fmt, writer_class):
        assert isinstance(WriterRegistry.get_writer(fmt), writer_class)

    def test_layer_name_forwarded(self):
        assert WriterRegistry.get_writer("KML", layer_name="BAIRROS").document_name == "BAIRROS"
        assert WriterRegistry.get_writer("DXF", layer_name="BAIRROS").layer_name == "BAIRROS"

    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormat):
            WriterRegistry.get_writer("GPKG")
