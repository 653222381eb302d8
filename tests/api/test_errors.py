import pytest

from leadsniper.api.errors import map_error_code


@pytest.mark.parametrize(
    ("code", "status"),
    [
        ("404_LEAD_NOT_FOUND", 404),
        ("429_DISCOVERY_RATE_LIMIT", 429),
        ("503_NOT_CONFIGURED", 503),
        ("700_OUT_OF_RANGE", 500),
        ("LEAD_NOT_FOUND", 500),
        (None, 500),
    ],
)
def test_map_error_code(code, status):
    assert map_error_code(code) == status
