"""
Pytest configuration and fixtures for annoeval tests.
"""

import json

import pytest

# Two cars and a person on one image; the second car carries a plate reading
BOX_GT_XML = """<?xml version="1.0" encoding="utf-8"?>
<annotations>
  <image id="0" name="frames/street_0.jpg" width="640" height="480">
    <box label="car" xtl="0" ytl="0" xbr="100" ybr="100">
      <attribute name="color">red</attribute>
    </box>
    <box label="car" xtl="200" ytl="0" xbr="300" ybr="100">
      <attribute name="color">blue</attribute>
    </box>
    <box label="person" xtl="400" ytl="0" xbr="450" ybr="120">
      <attribute name="color">green</attribute>
    </box>
  </image>
</annotations>
"""

SQUARE = [[0, 0], [100, 0], [100, 100], [0, 100]]
TRIANGLE = [[200, 200], [300, 200], [250, 300]]


def coco_document(annotations, categories=None, images=None):
    """Build COCO JSON text from annotation dicts."""
    return json.dumps(
        {
            "images": images or [{"id": 1, "file_name": "scene.jpg", "width": 640, "height": 480}],
            "categories": categories or [{"id": 1, "name": "building"}, {"id": 2, "name": "tree"}],
            "annotations": annotations,
        }
    )


def coco_polygon(ann_id, points, category_id=1, image_id=1, **attributes):
    """COCO annotation dict with a flat segmentation ring."""
    flat = [float(v) for point in points for v in point]
    entry = {
        "id": ann_id,
        "image_id": image_id,
        "category_id": category_id,
        "segmentation": [flat],
    }
    if attributes:
        entry["attributes"] = attributes
    return entry


@pytest.fixture
def box_gt_xml() -> str:
    """CVAT XML with two cars and a person."""
    return BOX_GT_XML


@pytest.fixture
def polygon_gt_json() -> str:
    """COCO JSON with a square building and a triangular tree."""
    return coco_document(
        [
            coco_polygon(1, SQUARE, category_id=1, material="brick"),
            coco_polygon(2, TRIANGLE, category_id=2, material="wood"),
        ]
    )


@pytest.fixture
def polygon_schema() -> dict:
    """Schema declaring a material attribute on both polygon labels."""
    return {
        "labels": [
            {"name": "building", "attributes": ["material"]},
            {"name": "tree", "attributes": ["material"]},
        ]
    }
