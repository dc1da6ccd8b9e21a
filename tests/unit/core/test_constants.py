"""
core/constants.py 테스트

모든 경로가 pathlib.Path 타입이고, 상수가 정상적으로 접근 가능한지 확인
"""

from pathlib import Path

from core.constants import PROJECT_ROOT, Defaults, Paths, RatioPrecision


class TestProjectRoot:
    """PROJECT_ROOT 테스트"""

    def test_project_root_is_absolute_path(self) -> None:
        """PROJECT_ROOT가 절대 경로인지 확인"""
        assert isinstance(PROJECT_ROOT, Path)
        assert PROJECT_ROOT.is_absolute()

    def test_project_root_contains_core_directory(self) -> None:
        """PROJECT_ROOT에 core 디렉토리가 있는지 확인"""
        assert (PROJECT_ROOT / "core").exists()


class TestPaths:
    """Paths 테스트"""

    def test_all_paths_are_path_type(self) -> None:
        for name in ("CONFIG_DIR", "DATA_DIR", "LOGS_DIR", "SETTINGS_FILE", "PROD_DB", "SANDBOX_DB"):
            assert isinstance(getattr(Paths, name), Path)

    def test_db_paths_differ(self) -> None:
        """운영 / 샌드박스 DB 분리"""
        assert Paths.PROD_DB != Paths.SANDBOX_DB
        assert Paths.PROD_DB.parent == Paths.DATA_DIR


class TestDefaults:
    """Defaults 테스트"""

    def test_list_limits(self) -> None:
        assert 0 < Defaults.LIST_LIMIT <= Defaults.LIST_LIMIT_MAX

    def test_timeouts_positive(self) -> None:
        assert Defaults.STORE_TIMEOUT_SEC > 0
        assert Defaults.BUSY_TIMEOUT_MS > 0

    def test_ratio_precision(self) -> None:
        assert RatioPrecision.MAX_FRACTIONAL_DIGITS == 1
