"""Tests for harp_ops.errors."""

import pytest

from harp_ops.errors import HarpDataError, MalformedInputError, UnimputableError


class TestErrorTaxonomy:
    def test_hierarchy(self):
        assert issubclass(MalformedInputError, HarpDataError)
        assert issubclass(UnimputableError, HarpDataError)
        assert issubclass(HarpDataError, ValueError)

    def test_kinds(self):
        assert HarpDataError("x").kind == "error"
        assert MalformedInputError("x").kind == "malformed"
        assert UnimputableError("LON_MIN").kind == "unimputable"

    def test_entity_attribute(self):
        err = MalformedInputError("HARP 5: duplicate timestamp", entity=5)
        assert err.entity == 5
        assert str(err) == "HARP 5: duplicate timestamp"
        assert MalformedInputError("table-level").entity is None

    def test_unimputable_message(self):
        err = UnimputableError("LON_MAX", entity=4321)
        assert err.field == "LON_MAX"
        assert str(err) == "Cannot impute 'LON_MAX' for HARP 4321: no observed values to fit"

    def test_unimputable_without_entity(self):
        assert str(UnimputableError("LON_MIN")) == "Cannot impute 'LON_MIN': no observed values to fit"

    def test_caught_as_value_error(self):
        with pytest.raises(ValueError):
            raise UnimputableError("LON_MIN", entity=1)
