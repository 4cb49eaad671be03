"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings


class LoanReviewConfig(BaseSettings):
    """Loan review core configuration"""
    
    # Storage configuration
    database_path: str = "loan_review.db"  # ":memory:" for a throwaway store
    loans_collection: str = "loans"
    audit_collection: str = "audit_logs"
    
    # Business rules configuration
    strict_transitions: bool = False  # Reject status changes on decided loans
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    class Config:
        env_prefix = "LOAN_REVIEW_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LoanReviewConfig()


def get_config() -> LoanReviewConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanReviewConfig:
    """Reload configuration from environment"""
    global config
    config = LoanReviewConfig()
    return config
