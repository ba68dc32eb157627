"""Improvement cycle configuration settings."""
import os
from dotenv import load_dotenv

load_dotenv()


class CycleConfig:
    """Configuration for improvement cycle runs."""
    
    # Persisted history format (no migration path between versions)
    SCHEMA_VERSION: str = "1.1.0"
    
    # Semver component bumped when approved suggestions change the prompt
    VERSION_BUMP: str = os.getenv("VERSION_BUMP", "patch")
    
    # History persistence
    HISTORY_DIR: str = os.getenv("HISTORY_DIR", "outputs/improvement_history")
    AUTO_SAVE: bool = os.getenv("AUTO_SAVE", "true").lower() == "true"  # Save after every round
    
    # Test execution
    MAX_PARALLEL_TESTS: int = int(os.getenv("MAX_PARALLEL_TESTS", "5"))  # Max concurrent test executions
    ENABLE_PARALLEL_TESTS: bool = os.getenv("ENABLE_PARALLEL_TESTS", "false").lower() == "true"
    
    # Progress display for the automatic driver
    SHOW_PROGRESS: bool = os.getenv("SHOW_PROGRESS", "true").lower() == "true"
    
    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json | text
    
    @classmethod
    def history_path(cls, session_name: str) -> str:
        """Default history file location for a named run."""
        return os.path.join(cls.HISTORY_DIR, f"{session_name}.json")
