# =============================================================================
# Unit Tests: Format Parsers
# =============================================================================

import json

import pytest
from openpyxl import Workbook
from pyproj import CRS
from shapely.geometry import LineString, Point, Polygon, mapping

from libs.errors import UnsupportedFormat
from libs.models import FormatKind, GeometryKind, SwapPolicy
from libs.parsers import (
    GeoJsonParser,
    ImportErrorLog,
    KmlParser,
    ParserRegistry,
    ShapefileParser,
    SpreadsheetParser,
    pick_source_id,
)


def _xlsx(path, rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


# =============================================================================
# Test: ImportErrorLog
# =============================================================================

class TestImportErrorLog:
    def test_empty(self):
        errors = ImportErrorLog()
        assert errors.error_count == 0
        assert not errors.has_errors()
        assert errors.summary() == "No errors"

    def test_summary(self):
        errors = ImportErrorLog()
        errors.add(3, "PARSE_ERROR", "missing lat", "lat")
        errors.add(5, "PARSE_ERROR", "bad lon")
        errors.add(9, "GEOMETRY_UNREPAIRABLE", "could not repair")
        lines = errors.summary().splitlines()
        assert lines[0] == "3 row(s) with errors (PARSE_ERROR: 2, GEOMETRY_UNREPAIRABLE: 1)"
        assert lines[1] == "Row 3 [lat]: PARSE_ERROR - missing lat"
        assert lines[2] == "Row 5: PARSE_ERROR - bad lon"

    def test_summary_limit(self):
        errors = ImportErrorLog()
        for row in range(1, 9):
            errors.add(row, "PARSE_ERROR", "x")
        lines = errors.summary(limit=5).splitlines()
        assert len(lines) == 7
        assert lines[-1] == "... and 3 more"

    def test_logs_are_independent(self):
        first, second = ImportErrorLog(), ImportErrorLog()
        first.add(1, "PARSE_ERROR", "x")
        assert second.error_count == 0


class TestPickSourceId:
    def test_alias_priority(self):
        attributes = {"code": "C-1", "externalId": "E-1"}
        assert pick_source_id(attributes) == "E-1"

    def test_blank_values_skipped(self):
        assert pick_source_id({"externalId": "  ", "id": "7"}) == "7"

    def test_integral_float_ids(self):
        assert pick_source_id({"ID": 42.0}) == "42"

    def test_no_match(self):
        assert pick_source_id({"nome": "Centro"}) is None


# =============================================================================
# Test: SpreadsheetParser
# =============================================================================

class TestSpreadsheetParser:
    def test_xlsx_points(self, tmp_path):
        path = _xlsx(
            tmp_path / "postes.xlsx",
            [
                ("ID", "COORDENADA_Y_LATLONG", "COORDENADA_X_LATLONG", "Potência"),
                ("P1", -20.36, -40.31, 150),
                ("P2", -20.30, -40.29, 250),
            ],
        )
        errors = ImportErrorLog()
        records = list(SpreadsheetParser().open(path, errors))

        assert [r.source_id for r in records] == ["P1", "P2"]
        first = records[0]
        assert first.kind == GeometryKind.POINT
        assert first.srid == 4326
        assert (first.geometry.x, first.geometry.y) == (-40.31, -20.36)
        assert first.attributes["Potência"] == 150
        assert first.row_index == 2
        assert errors.error_count == 0

    def test_transposed_pair_swapped_by_magnitude(self, tmp_path):
        path = _xlsx(tmp_path / "swap.xlsx", [("id", "lat", "lon"), ("P1", -40.31, -20.36)])
        record = next(iter(SpreadsheetParser(SwapPolicy.MAGNITUDE).open(path, ImportErrorLog())))
        assert (record.geometry.x, record.geometry.y) == (-40.31, -20.36)

    def test_never_policy_keeps_pair(self, tmp_path):
        path = _xlsx(tmp_path / "swap.xlsx", [("id", "lat", "lon"), ("P1", -40.31, -20.36)])
        record = next(iter(SpreadsheetParser(SwapPolicy.NEVER).open(path, ImportErrorLog())))
        assert (record.geometry.x, record.geometry.y) == (-20.36, -40.31)

    def test_bad_rows_are_counted(self, tmp_path):
        path = _xlsx(
            tmp_path / "postes.xlsx",
            [
                ("id", "latitude", "longitude"),
                ("P1", -20.36, -40.31),
                ("P2", None, -40.31),
                ("P3", "abc", -40.31),
                ("P4", -20.30, -40.29),
            ],
        )
        errors = ImportErrorLog()
        records = list(SpreadsheetParser().open(path, errors))

        assert [r.source_id for r in records] == ["P1", "P4"]
        assert errors.error_count == 2
        assert [e.row_index for e in errors.errors] == [3, 4]
        assert errors.errors[0].field == "latitude"

    def test_csv_with_leading_blank_rows(self, tmp_path):
        path = tmp_path / "pontos.csv"
        path.write_text(",,\n,,\nnome,lat,lon\nPoste A,\"-20,36\",-40.31\n", encoding="utf-8")
        errors = ImportErrorLog()
        records = list(SpreadsheetParser().open(path, errors))

        assert len(records) == 1
        assert records[0].row_index == 4
        assert records[0].source_id == "ROW-4"
        assert records[0].geometry.y == pytest.approx(-20.36)

    def test_empty_preferred_column_falls_back_per_row(self, tmp_path):
        path = _xlsx(
            tmp_path / "pontos.xlsx",
            [
                ("COORDENADA_Y_LATLONG", "COORDENADA_X_LATLONG", "lat", "lon"),
                (None, None, -20.3, -40.3),
                (-20.36, -40.31, None, None),
            ],
        )
        errors = ImportErrorLog()
        records = list(SpreadsheetParser().open(path, errors))

        assert errors.error_count == 0
        assert [(r.geometry.y, r.geometry.x) for r in records] == [(-20.3, -40.3), (-20.36, -40.31)]

    def test_unit_marks_stripped_from_coordinates(self, tmp_path):
        path = _xlsx(tmp_path / "graus.xlsx", [("id", "lat", "lon"), ("P1", "-20.3°", " -40,3° ")])
        errors = ImportErrorLog()
        records = list(SpreadsheetParser().open(path, errors))

        assert errors.error_count == 0
        assert (records[0].geometry.y, records[0].geometry.x) == (pytest.approx(-20.3), pytest.approx(-40.3))

    def test_csv_latin1(self, tmp_path):
        path = tmp_path / "pontos.csv"
        path.write_bytes("id,lat,lon,município\nP1,-20.36,-40.31,Vitória\n".encode("latin-1"))
        record = next(iter(SpreadsheetParser().open(path, ImportErrorLog())))
        assert record.attributes["município"] == "Vitória"

    def test_missing_coordinate_columns(self, tmp_path):
        path = _xlsx(tmp_path / "sem_coords.xlsx", [("id", "nome"), ("1", "x")])
        with pytest.raises(UnsupportedFormat, match="latitude/longitude"):
            list(SpreadsheetParser().open(path, ImportErrorLog()))

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a workbook")
        with pytest.raises(UnsupportedFormat):
            list(SpreadsheetParser().open(path, ImportErrorLog()))


# =============================================================================
# Test: KmlParser
# =============================================================================

POINT_PLACEMARK = """
<Placemark id="pm-1">
  <name>Poste 10</name>
  <description><![CDATA[<table><tr><td>MUNICIPIO</td><td>Vitória</td></tr>
  <tr><td>TIPO</td><td>null</td></tr></table>]]></description>
  <Point><coordinates>-40.31,-20.36,0</coordinates></Point>
</Placemark>
"""

POLYGON_PLACEMARK = """
<Placemark>
  <name>Centro</name>
  <ExtendedData><Data name="id"><value>B-01</value></Data></ExtendedData>
  <Polygon><outerBoundaryIs><LinearRing>
    <coordinates>-40.3,-20.3 -40.2,-20.3 -40.2,-20.2 -40.3,-20.2 -40.3,-20.3</coordinates>
  </LinearRing></outerBoundaryIs></Polygon>
</Placemark>
"""


class TestKmlParser:
    def test_point_placemark(self, write_kml):
        path = write_kml("postes", POINT_PLACEMARK)
        records = list(KmlParser().open(path, ImportErrorLog()))

        assert len(records) == 1
        record = records[0]
        assert record.kind == GeometryKind.POINT
        assert record.srid == 4326
        assert (record.geometry.x, record.geometry.y) == (-40.31, -20.36)
        assert record.attributes["name"] == "Poste 10"
        assert record.attributes["MUNICIPIO"] == "Vitória"
        assert record.attributes["TIPO"] is None
        assert record.source_id == "pm-1"

    def test_transposed_coordinates_swapped(self, write_kml):
        path = write_kml(
            "postes", "<Placemark><Point><coordinates>-20.36,-40.31</coordinates></Point></Placemark>"
        )
        record = next(iter(KmlParser(SwapPolicy.MAGNITUDE).open(path, ImportErrorLog())))
        assert (record.geometry.x, record.geometry.y) == (-40.31, -20.36)
        assert record.source_id == "PLACEMARK-1"

    def test_polygon_with_extended_data(self, write_kml):
        path = write_kml("bairros", POLYGON_PLACEMARK)
        record = next(iter(KmlParser().open(path, ImportErrorLog())))
        assert record.kind == GeometryKind.POLYGON
        assert record.source_id == "B-01"
        assert record.geometry.area > 0

    def test_multigeometry_lines(self, write_kml):
        path = write_kml(
            "rede",
            "<Placemark><MultiGeometry>"
            "<LineString><coordinates>-40.3,-20.3 -40.2,-20.2</coordinates></LineString>"
            "<LineString><coordinates>-40.1,-20.1 -40.0,-20.0</coordinates></LineString>"
            "</MultiGeometry></Placemark>",
        )
        record = next(iter(KmlParser().open(path, ImportErrorLog())))
        assert record.kind == GeometryKind.MULTILINESTRING

    def test_placemark_without_geometry_is_row_error(self, write_kml):
        path = write_kml("postes", "<Placemark><name>vazio</name></Placemark>" + POINT_PLACEMARK)
        errors = ImportErrorLog()
        records = list(KmlParser().open(path, errors))

        assert len(records) == 1
        assert errors.error_count == 1
        assert errors.errors[0].row_index == 1
        assert "no coordinates" in errors.errors[0].message

    def test_latin1_fallback(self, write_kml):
        path = write_kml("postes", POINT_PLACEMARK, encoding="latin-1")
        record = next(iter(KmlParser().open(path, ImportErrorLog())))
        assert record.attributes["MUNICIPIO"] == "Vitória"

    def test_malformed_document(self, tmp_path):
        path = tmp_path / "broken.kml"
        path.write_text("<kml><Document>")
        with pytest.raises(UnsupportedFormat):
            list(KmlParser().open(path, ImportErrorLog()))


# =============================================================================
# Test: GeoJsonParser
# =============================================================================

class TestGeoJsonParser:
    def test_feature_collection(self, write_geojson):
        path = write_geojson(
            "bairros",
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "id": 7,
                        "geometry": mapping(Point(-40.3, -20.3)),
                        "properties": {"nome": "Centro"},
                    },
                    {
                        "type": "Feature",
                        "geometry": mapping(LineString([(-40.3, -20.3), (-40.2, -20.2)])),
                        "properties": {"externalId": "L-1"},
                    },
                ],
            },
        )
        records = list(GeoJsonParser().open(path, ImportErrorLog()))
        assert [r.source_id for r in records] == ["7", "L-1"]
        assert all(r.srid == 4326 for r in records)
        assert records[0].attributes == {"nome": "Centro"}

    def test_crs_member_sets_srid(self, write_geojson):
        path = write_geojson(
            "projetado",
            {
                "type": "FeatureCollection",
                "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:EPSG::31984"}},
                "features": [
                    {"type": "Feature", "geometry": mapping(Point(360000, 7750000)), "properties": {}}
                ],
            },
        )
        record = next(iter(GeoJsonParser().open(path, ImportErrorLog())))
        assert record.srid == 31984
        assert record.source_id == "FEATURE-1"

    def test_bare_geometry(self, write_geojson):
        square = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        path = write_geojson("area", mapping(square))
        records = list(GeoJsonParser().open(path, ImportErrorLog()))
        assert len(records) == 1
        assert records[0].kind == GeometryKind.POLYGON

    def test_null_geometry_is_row_error(self, write_geojson):
        path = write_geojson(
            "bairros",
            {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": None, "properties": {}}]},
        )
        errors = ImportErrorLog()
        assert list(GeoJsonParser().open(path, errors)) == []
        assert errors.error_count == 1

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.geojson"
        path.write_text("{not json")
        with pytest.raises(UnsupportedFormat):
            list(GeoJsonParser().open(path, ImportErrorLog()))

    def test_non_geojson_object(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"hello": "world"}))
        with pytest.raises(UnsupportedFormat):
            list(GeoJsonParser().open(path, ImportErrorLog()))


# =============================================================================
# Test: ShapefileParser
# =============================================================================

class TestShapefileParser:
    def test_points_with_prj(self, write_shapefile):
        path = write_shapefile(
            "postes",
            "Point",
            [(Point(-40.3, -20.3), {"code": "P1"}), (Point(-40.2, -20.2), {"code": "P2"})],
        )
        records = list(ShapefileParser().open(path, ImportErrorLog()))

        assert [r.source_id for r in records] == ["P1", "P2"]
        assert records[0].srid == 4326
        assert records[0].attributes == {"code": "P1"}
        assert records[0].row_index == 1

    def test_feature_id_when_no_alias(self, write_shapefile):
        path = write_shapefile(
            "ruas",
            "LineString",
            [(LineString([(0, 0), (1, 1)]), {"nome": "Rua A"})],
            fields={"nome": "str:20"},
        )
        record = next(iter(ShapefileParser().open(path, ImportErrorLog())))
        assert record.source_id == "0"
        assert record.kind == GeometryKind.LINESTRING

    def test_prj_without_epsg_code_is_kept(self, write_shapefile):
        path = write_shapefile("lotes", "Point", [(Point(400000.0, 7750000.0), {"code": "L1"})], epsg=31984)
        local_tm = CRS.from_proj4(
            "+proj=tmerc +lat_0=0 +lon_0=-40.5 +k=0.9996 +x_0=400000 +y_0=10000000 +ellps=GRS80 +units=m"
        )
        path.with_suffix(".prj").write_text(local_tm.to_wkt("WKT1_ESRI"))

        record = next(iter(ShapefileParser().open(path, ImportErrorLog())))

        assert record.srid is None
        assert CRS.from_wkt(record.source_crs).is_projected

    def test_missing_file(self, tmp_path):
        with pytest.raises(UnsupportedFormat):
            list(ShapefileParser().open(tmp_path / "nada.shp", ImportErrorLog()))


# =============================================================================
# Test: ParserRegistry
# =============================================================================

class TestParserRegistry:
    @pytest.mark.parametrize(
        "kind, parser_class",
        [
            (FormatKind.SHAPEFILE, ShapefileParser),
            (FormatKind.SPREADSHEET, SpreadsheetParser),
            (FormatKind.KML, KmlParser),
            (FormatKind.GEOJSON, GeoJsonParser),
        ],
    )
    def test_lookup(self, kind, parser_class):
        assert isinstance(ParserRegistry.get_parser(kind), parser_class)

    def test_swap_policy_forwarded(self):
        parser = ParserRegistry.get_parser(FormatKind.SPREADSHEET, SwapPolicy.NEVER)
        assert parser.swap_policy == SwapPolicy.NEVER

    def test_archive_has_no_parser(self):
        with pytest.raises(UnsupportedFormat):
            ParserRegistry.get_parser(FormatKind.ARCHIVE)

    def test_fresh_instances(self):
        assert ParserRegistry.get_parser(FormatKind.KML) is not ParserRegistry.get_parser(FormatKind.KML)
