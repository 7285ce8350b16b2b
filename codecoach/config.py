import os


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class BaseConfig:
    """Base configuration shared across all environments."""

    # Flask core
    SECRET_KEY = os.environ.get('SECRET_KEY', 'fallback-secret-key-change-me')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///dev.db'
    )

    # Analysis provider: 'remote_llm' or 'mock'
    ANALYSIS_PROVIDER = os.environ.get('ANALYSIS_PROVIDER', 'remote_llm')

    # LLM settings used by the remote_llm analysis provider
    AI_PROVIDER = os.environ.get('AI_PROVIDER', 'claude')
    AI_MODEL = os.environ.get('AI_MODEL', '')

    # AI API keys
    ANTHROPIC_API_KEY = os.environ.get('ANTHROPIC_API_KEY', '')
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    ZHIPU_API_KEY = os.environ.get('ZHIPU_API_KEY', '')

    # Analysis client: timeout, retry and pre-flight limits
    ANALYSIS_TIMEOUT_SECONDS = float(os.environ.get('ANALYSIS_TIMEOUT_SECONDS', '10'))
    ANALYSIS_MAX_ATTEMPTS = int(os.environ.get('ANALYSIS_MAX_ATTEMPTS', '4'))
    ANALYSIS_BACKOFF_BASE_SECONDS = float(
        os.environ.get('ANALYSIS_BACKOFF_BASE_SECONDS', '1.0')
    )
    ANALYSIS_BACKOFF_JITTER = float(os.environ.get('ANALYSIS_BACKOFF_JITTER', '0.2'))
    ANALYSIS_MAX_CODE_CHARS = int(os.environ.get('ANALYSIS_MAX_CODE_CHARS', '50000'))
    SUPPORTED_LANGUAGES = tuple(
        lang.strip().lower()
        for lang in os.environ.get(
            'SUPPORTED_LANGUAGES',
            'python,javascript,typescript,java,c,cpp,csharp,go,rust,ruby,kotlin,swift',
        ).split(',')
        if lang.strip()
    )

    # Deferred analysis queue
    QUEUE_MAX_AGE_SECONDS = int(os.environ.get('QUEUE_MAX_AGE_SECONDS', '3600'))
    QUEUE_REDELIVERY_DELAY_SECONDS = float(
        os.environ.get('QUEUE_REDELIVERY_DELAY_SECONDS', '8')
    )
    QUEUE_DRAIN_BATCH_SIZE = int(os.environ.get('QUEUE_DRAIN_BATCH_SIZE', '20'))

    # Orchestrator
    LEASE_TTL_SECONDS = int(os.environ.get('LEASE_TTL_SECONDS', '120'))
    ORCHESTRATOR_MAX_WORKERS = int(os.environ.get('ORCHESTRATOR_MAX_WORKERS', '4'))
    PRACTICE_SET_SIZE = int(os.environ.get('PRACTICE_SET_SIZE', '5'))

    # Weak-area healing
    HEALING_WINDOW_DAYS = int(os.environ.get('HEALING_WINDOW_DAYS', '14'))
    HEALING_DECAY_FACTOR = float(os.environ.get('HEALING_DECAY_FACTOR', '0.5'))
    WEAK_AREA_RANK_FLOOR = float(os.environ.get('WEAK_AREA_RANK_FLOOR', '0.1'))

    # Growth trend
    TREND_WEEKS = int(os.environ.get('TREND_WEEKS', '8'))

    # Logging
    LOG_FILE_MAX_BYTES = int(os.environ.get('LOG_FILE_MAX_BYTES', '0'))
    LOG_FILE_BACKUP_COUNT = int(os.environ.get('LOG_FILE_BACKUP_COUNT', '3'))

    # Scheduler
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'false')
    QUEUE_DRAIN_INTERVAL_SECONDS = int(
        os.environ.get('QUEUE_DRAIN_INTERVAL_SECONDS', '30')
    )


class DevelopmentConfig(BaseConfig):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///dev.db'
    )
    SCHEDULER_ENABLED = False


class ProductionConfig(BaseConfig):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///prod.db'
    )
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'true')
    LOG_FILE_MAX_BYTES = int(os.environ.get('LOG_FILE_MAX_BYTES', str(10 * 1024 * 1024)))


class TestingConfig(BaseConfig):
    """Testing environment configuration."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    SCHEDULER_ENABLED = False
    SERVER_NAME = 'localhost'
    ANALYSIS_PROVIDER = 'mock'
    LOG_FILE_MAX_BYTES = 0


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}
