"""Tests for tabby._errors."""

import pytest

from tabby._errors import (
    ConfigError,
    ContentError,
    ExportError,
    ImageError,
    RenderError,
    TabbyError,
    ThemeError,
)

_ERRORS = (ConfigError, ContentError, ThemeError, RenderError, ImageError, ExportError)


class TestErrorHierarchy:
    """All tabby errors inherit from TabbyError."""

    def test_tabby_error_is_exception(self) -> None:
        assert issubclass(TabbyError, Exception)

    @pytest.mark.parametrize("error_cls", _ERRORS)
    def test_inherits(self, error_cls: type[TabbyError]) -> None:
        assert issubclass(error_cls, TabbyError)

    def test_catch_all_tabby_errors(self) -> None:
        """All specific errors are catchable via TabbyError."""
        for error_cls in _ERRORS:
            with pytest.raises(TabbyError, match="boom"):
                raise error_cls("boom")
