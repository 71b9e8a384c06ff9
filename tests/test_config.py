"""
설정 관리 테스트 모듈

설정 파일, 환경 변수, CLI 플래그 병합과 값 보정 기능을 테스트합니다.
"""

import os
from pathlib import Path

import pytest

from qicache.config.settings import (
    ConfigResolver,
    Settings,
    load_config_file,
    resolve_settings,
    write_default_config,
)
from qicache.exceptions import ConfigurationException, ConflictException


def write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestSettings:
    """설정 클래스 테스트"""

    def test_default_settings(self):
        """기본 설정 테스트"""
        settings = Settings()

        assert settings.cache_dir == os.path.expanduser("~/.qi/cache")
        assert settings.default_branch == "main"
        assert settings.auto_update is False
        assert settings.verbose is False
        assert settings.dry_run is False
        assert settings.force is False
        assert settings.git_timeout == 300
        assert settings.network_retries == 3
        assert settings.lock_timeout == 30
        assert settings.script_pattern_list == ["*.bash"]
        assert ".git" in settings.excluded_dir_set
        assert "node_modules" in settings.excluded_dir_set

    def test_잘못된_재시도_지연은_기본값으로_보정(self, monkeypatch):
        """음수나 숫자가 아닌 재시도 지연은 오류 없이 기본값 사용"""
        monkeypatch.setenv("QI_RETRY_DELAY", "-1")
        assert Settings().retry_delay == 1.0

        monkeypatch.setenv("QI_RETRY_DELAY", "abc")
        assert Settings().retry_delay == 1.0

        monkeypatch.setenv("QI_RETRY_DELAY", "0.5")
        assert Settings().retry_delay == 0.5

    def test_빈_환경_변수는_무시(self, monkeypatch, tmp_path):
        """값이 비어 있는 환경 변수는 설정 파일이나 기본값으로 대체"""
        config = write_config(tmp_path / "config", f"cache_dir={tmp_path / 'file-cache'}\n")
        monkeypatch.setenv("QI_CONFIG_FILE", str(config))
        monkeypatch.setenv("QI_CACHE_DIR", "")
        monkeypatch.setenv("QI_DEFAULT_BRANCH", "")

        settings = ConfigResolver().resolve()

        assert settings.cache_dir == str(tmp_path / "file-cache")
        assert settings.default_branch == "main"

    def test_settings_from_env(self, monkeypatch, tmp_path):
        """환경 변수로부터 설정 로드 테스트"""
        monkeypatch.setenv("QI_CACHE_DIR", str(tmp_path / "env-cache"))
        monkeypatch.setenv("QI_DEFAULT_BRANCH", "develop")
        monkeypatch.setenv("QI_VERBOSE", "yes")
        monkeypatch.setenv("QI_AUTO_UPDATE", "TRUE")
        monkeypatch.setenv("QI_DRY_RUN", "1")
        monkeypatch.setenv("QI_FORCE", "no")
        monkeypatch.setenv("QI_GIT_TIMEOUT", "10")
        monkeypatch.setenv("QI_NETWORK_RETRIES", "5")

        settings = Settings()

        assert settings.cache_dir == str(tmp_path / "env-cache")
        assert settings.default_branch == "develop"
        assert settings.verbose is True
        assert settings.auto_update is True
        assert settings.dry_run is True
        assert settings.force is False
        assert settings.git_timeout == 10
        assert settings.network_retries == 5

    def test_잘못된_불리언은_기본값으로_보정(self, monkeypatch):
        """잘못된 불리언 값은 오류 없이 기본값 사용"""
        monkeypatch.setenv("QI_VERBOSE", "maybe")
        monkeypatch.setenv("QI_AUTO_UPDATE", "")

        settings = Settings()

        assert settings.verbose is False
        assert settings.auto_update is False

    def test_잘못된_숫자는_기본값으로_보정(self, monkeypatch):
        """음수나 숫자가 아닌 값은 기본값 사용"""
        monkeypatch.setenv("QI_GIT_TIMEOUT", "-5")
        monkeypatch.setenv("QI_NETWORK_RETRIES", "three")

        settings = Settings()

        assert settings.git_timeout == 300
        assert settings.network_retries == 3

    def test_홈_디렉토리_확장(self):
        """경로의 ~ 확장 테스트"""
        settings = Settings(cache_dir="~/custom-cache")
        assert settings.cache_dir == os.path.expanduser("~/custom-cache")
        assert settings.cache_path == Path(os.path.expanduser("~/custom-cache"))

    def test_빈_기본_브랜치_거부(self):
        """빈 기본 브랜치는 검증 오류"""
        with pytest.raises(ValueError):
            Settings(default_branch="   ")

    def test_설정은_불변(self, settings):
        """해석된 설정은 변경할 수 없음"""
        with pytest.raises(Exception):
            settings.default_branch = "other"

    def test_목록_설정_파싱(self):
        """쉼표 구분 설정 파싱"""
        settings = Settings(script_patterns="*.bash, *.sh ,", excluded_dirs="a, b")
        assert settings.script_pattern_list == ["*.bash", "*.sh"]
        assert settings.excluded_dir_set == {"a", "b"}


class TestConfigFile:
    """설정 파일 파싱 테스트"""

    def test_주석과_따옴표_처리(self, tmp_path):
        """주석, 빈 줄, 따옴표 처리"""
        config = write_config(tmp_path / "config", "\n".join([
            "# 주석",
            "; 세미콜론 주석",
            "",
            "default_branch = \"develop\"",
            "cache_dir='/tmp/qi cache'",
            "auto_update=yes",
        ]))

        values = load_config_file(config)

        assert values == {
            "default_branch": "develop",
            "cache_dir": "/tmp/qi cache",
            "auto_update": "yes",
        }

    def test_잘못된_줄과_알_수_없는_키는_건너뜀(self, tmp_path):
        """형식이 잘못된 줄과 알 수 없는 키는 치명적이지 않음"""
        config = write_config(tmp_path / "config", "\n".join([
            "this line is broken",
            "=novalue",
            "unknown_key=1",
            "git_timeout=42",
        ]))

        values = load_config_file(config)

        assert values == {"git_timeout": "42"}

    def test_설정_파일_없음(self, tmp_path):
        """설정 파일이 없으면 빈 결과"""
        assert load_config_file(tmp_path / "missing") == {}

    def test_설정_파일_값_적용(self, tmp_path):
        """설정 파일 값이 기본값을 덮어씀"""
        config = write_config(tmp_path / "config", "default_branch=develop\nverbose=true\n")

        settings = Settings(config_file=str(config))

        assert settings.default_branch == "develop"
        assert settings.verbose is True


class TestConfigResolver:
    """설정 계층 병합 테스트"""

    def test_우선순위(self, tmp_path, monkeypatch):
        """CLI > 환경 변수 > 설정 파일 > 기본값"""
        config = write_config(tmp_path / "config", "\n".join([
            "default_branch=from-file",
            "auto_update=true",
            "git_timeout=11",
        ]))
        monkeypatch.setenv("QI_CONFIG_FILE", str(config))
        monkeypatch.setenv("QI_DEFAULT_BRANCH", "from-env")
        monkeypatch.setenv("QI_GIT_TIMEOUT", "22")
        resolver = ConfigResolver()

        from_env = resolver.resolve({"cache_dir": str(tmp_path / "cache")})
        assert from_env.default_branch == "from-env"
        assert from_env.git_timeout == 22
        assert from_env.auto_update is True

        from_cli = resolver.resolve({
            "cache_dir": str(tmp_path / "cache"),
            "default_branch": "from-cli",
            "auto_update": False,
        })
        assert from_cli.default_branch == "from-cli"
        assert from_cli.auto_update is False

    def test_None_값은_지정되지_않은_플래그(self, tmp_path, monkeypatch):
        """None 값인 CLI 플래그는 무시"""
        monkeypatch.setenv("QI_DEFAULT_BRANCH", "from-env")

        settings = resolve_settings({"cache_dir": str(tmp_path / "cache"), "default_branch": None})

        assert settings.default_branch == "from-env"

    def test_알_수_없는_CLI_키(self, tmp_path):
        """알 수 없는 CLI 키는 설정 오류"""
        with pytest.raises(ConfigurationException) as exc_info:
            ConfigResolver().resolve({"cache_dir": str(tmp_path), "bogus": 1})
        assert "bogus" in exc_info.value.message

    def test_잘못된_값은_설정_오류(self, tmp_path):
        """검증 실패는 ConfigurationException으로 변환"""
        with pytest.raises(ConfigurationException):
            ConfigResolver().resolve({"cache_dir": str(tmp_path), "default_branch": ""})

    def test_상위_경로_생성(self, tmp_path):
        """캐시 디렉토리의 상위 경로를 생성"""
        cache_dir = tmp_path / "a" / "b" / "cache"

        settings = ConfigResolver().resolve({"cache_dir": str(cache_dir)})

        assert settings.cache_dir == str(cache_dir)
        assert cache_dir.parent.is_dir()
        assert not cache_dir.exists()

    def test_캐시_경로가_파일이면_오류(self, tmp_path):
        """캐시 경로가 일반 파일이면 설정 오류"""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(ConfigurationException):
            ConfigResolver().resolve({"cache_dir": str(blocker)})

        with pytest.raises(ConfigurationException):
            ConfigResolver().resolve({"cache_dir": str(blocker / "cache")})

    def test_설정_오류_종료_코드(self, tmp_path):
        """설정 오류는 잘못된 사용 종료 코드"""
        with pytest.raises(ConfigurationException) as exc_info:
            ConfigResolver().resolve({"cache_dir": str(tmp_path), "bogus": 1})
        assert exc_info.value.exit_code == 2

    def test_설정_파일의_잘못된_재시도_지연(self, tmp_path, monkeypatch):
        """설정 파일의 잘못된 재시도 지연도 치명적이지 않음"""
        config = write_config(tmp_path / "config", "retry_delay=-3\n")
        monkeypatch.setenv("QI_CONFIG_FILE", str(config))

        settings = ConfigResolver().resolve({"cache_dir": str(tmp_path / "cache")})

        assert settings.retry_delay == 1.0


class TestDefaultConfigFile:
    """기본 설정 파일 생성 테스트"""

    def test_기본_설정_파일_생성(self, tmp_path):
        path = write_default_config(tmp_path / "qi" / "config")

        text = path.read_text(encoding="utf-8")
        assert text.startswith("# qi 설정 파일")
        assert "default_branch=main" in text.splitlines()
        assert "auto_update=false" in text.splitlines()

    def test_생성한_파일은_그대로_읽힘(self, tmp_path):
        """생성된 파일의 값은 모두 알려진 키이며 기본값과 같음"""
        path = write_default_config(tmp_path / "config")

        values = load_config_file(path)

        assert values == {
            "cache_dir": "~/.qi/cache",
            "default_branch": "main",
            "auto_update": "false",
            "verbose": "false",
        }

    def test_기존_파일은_덮어쓰지_않음(self, tmp_path):
        path = write_config(tmp_path / "config", "default_branch=develop\n")

        with pytest.raises(ConflictException):
            write_default_config(path)

        assert path.read_text(encoding="utf-8") == "default_branch=develop\n"

    def test_init_config_file은_QI_CONFIG_FILE_사용(self, tmp_path, monkeypatch):
        target = tmp_path / "env-config"
        monkeypatch.setenv("QI_CONFIG_FILE", str(target))

        created = ConfigResolver().init_config_file()

        assert created == target
        assert target.is_file()
