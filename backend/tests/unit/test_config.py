"""
Unit tests for configuration, validation and backend wiring
"""
import pytest

from callflow.core.config import ConfigManager, Settings
from callflow.core.container import create_engine
from callflow.core.validation import ConfigValidator, validate_config_on_startup
from callflow.domain.models.ivr_event import DuplicateEventPolicy
from callflow.infrastructure.storage.factory import StorageFactory
from callflow.infrastructure.storage.memory_directory import MemoryDirectoryProvider
from callflow.infrastructure.storage.memory_session_repository import MemorySessionRepository
from callflow.infrastructure.storage.redis_session_repository import RedisSessionRepository


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "default.yaml").write_text(
        "routing:\n"
        "  duplicate_events: record\n"
        "storage:\n"
        "  append_retries: 5\n"
        "  redis_key_prefix: \"${CALLFLOW_TEST_PREFIX}\"\n"
    )
    (tmp_path / "staging.yaml").write_text(
        "routing:\n"
        "  duplicate_events: skip_consecutive\n"
    )
    return tmp_path


class TestConfigManager:
    """Tests for YAML configuration loading"""

    def test_environment_file_overrides_default(self, config_dir):
        """Test deep merge of environment config"""
        config = ConfigManager(env="staging", config_dir=config_dir)

        assert config.get("routing.duplicate_events") == "skip_consecutive"
        assert config.get("storage.append_retries") == 5

    def test_env_var_substitution(self, config_dir, monkeypatch):
        """Test ${VAR} substitution"""
        monkeypatch.setenv("CALLFLOW_TEST_PREFIX", "tenant-a")
        config = ConfigManager(config_dir=config_dir)

        assert config.get("storage.redis_key_prefix") == "tenant-a"

    def test_missing_key_returns_default(self, config_dir):
        """Test dotted lookup fallback"""
        config = ConfigManager(config_dir=config_dir)
        assert config.get("analytics.stale_after_seconds", 3600) == 3600

    def test_get_int_rejects_non_numbers(self, config_dir):
        """Test integer coercion"""
        config = ConfigManager(config_dir=config_dir)
        config._config["storage"]["append_retries"] = "many"

        with pytest.raises(ValueError):
            config.get_int("storage.append_retries", 5)

    def test_shipped_defaults(self):
        """Test the default.yaml shipped with the service"""
        config = ConfigManager()

        assert config.get("routing.duplicate_events") == "record"
        assert config.get_int("storage.append_retries", 0) == 5
        assert config.get_int("analytics.stale_after_seconds", 0) == 3600


class TestSettings:
    """Tests for environment settings"""

    def test_backends_from_environment(self, monkeypatch):
        """Test backend selection via environment variables"""
        monkeypatch.setenv("SESSION_BACKEND", "redis")
        monkeypatch.setenv("DIRECTORY_BACKEND", "supabase")

        settings = Settings()
        assert settings.session_backend == "redis"
        assert settings.directory_backend == "supabase"


class TestConfigValidator:
    """Tests for startup validation"""

    def test_supabase_backend_requires_credentials(self):
        """Test missing Supabase settings are errors"""
        settings = Settings(session_backend="supabase", supabase_url=None, supabase_service_key=None)

        valid, results = ConfigValidator(settings).validate_all()

        assert not valid
        assert {r.setting for r in results if not r.is_valid} == {"SUPABASE_URL", "SUPABASE_SERVICE_KEY"}

    def test_memory_backend_warns(self):
        """Test memory store is a warning outside strict mode"""
        settings = Settings(session_backend="memory", directory_backend="memory")

        assert ConfigValidator(settings).validate_all()[0] is True
        assert ConfigValidator(settings, strict=True).validate_all()[0] is False

    def test_unknown_backend(self):
        """Test unknown backend name"""
        settings = Settings(session_backend="cassandra")

        with pytest.raises(RuntimeError, match="cassandra"):
            validate_config_on_startup(settings)


class TestStorageFactory:
    """Tests for backend creation"""

    def test_memory_backends(self, config_dir):
        """Test default in-memory wiring"""
        factory = StorageFactory(
            Settings(session_backend="memory", directory_backend="memory"),
            ConfigManager(config_dir=config_dir)
        )

        assert isinstance(factory.create_session_repository(), MemorySessionRepository)
        assert isinstance(factory.create_directory(), MemoryDirectoryProvider)

    def test_redis_backend_uses_config(self, config_dir, monkeypatch):
        """Test Redis store picks up prefix and retries"""
        monkeypatch.setenv("CALLFLOW_TEST_PREFIX", "cfx")
        factory = StorageFactory(
            Settings(session_backend="redis", redis_url="redis://localhost:6379/1"),
            ConfigManager(config_dir=config_dir)
        )

        repo = factory.create_session_repository()

        assert isinstance(repo, RedisSessionRepository)
        assert repo._session_key("T1", "c1") == "cfx:session:T1:c1"
        assert repo._max_retries == 5

    def test_unknown_backend_raises(self, config_dir):
        """Test unknown backend name"""
        factory = StorageFactory(Settings(session_backend="cassandra"), ConfigManager(config_dir=config_dir))

        with pytest.raises(ValueError, match="Unknown session backend"):
            factory.create_session_repository()

    def test_supabase_without_credentials(self, config_dir):
        """Test Supabase backend refuses to start unconfigured"""
        factory = StorageFactory(
            Settings(directory_backend="supabase", supabase_url=None, supabase_service_key=None),
            ConfigManager(config_dir=config_dir)
        )

        with pytest.raises(RuntimeError):
            factory.create_directory()


class TestEngineWiring:
    """Tests for create_engine"""

    def test_duplicate_policy_from_config(self, config_dir):
        """Test routing.duplicate_events reaches the dispatcher"""
        engine = create_engine(
            MemorySessionRepository(),
            MemoryDirectoryProvider(),
            ConfigManager(env="staging", config_dir=config_dir)
        )

        assert engine.dispatcher._duplicate_policy == DuplicateEventPolicy.SKIP_CONSECUTIVE
