import os
from typing import List
from dotenv import load_dotenv

from models import CURRENCY_SYMBOLS, PAYMENT_TERMS

# Load environment variables
load_dotenv()

class Config:
    # Server Configuration
    PORT = int(os.getenv("PORT", 8080))
    HOST = os.getenv("HOST", "0.0.0.0")

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", 60))
    EXPORT_RATE_LIMIT_PER_HOUR = int(os.getenv("EXPORT_RATE_LIMIT_PER_HOUR", 30))

    # Logo Upload Settings
    MAX_LOGO_SIZE_MB = int(os.getenv("MAX_LOGO_SIZE_MB", 2))
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
    PDF_OUTPUT_DIR = os.getenv("PDF_OUTPUT_DIR", "generated_invoices")

    @property
    def max_logo_size_bytes(self) -> int:
        return self.MAX_LOGO_SIZE_MB * 1024 * 1024

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./invoice_drafts.db")
    SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", 24))
    SESSION_CLEANUP_INTERVAL_MINUTES = int(os.getenv("SESSION_CLEANUP_INTERVAL_MINUTES", 60))

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "invoice_drafts.log")

    # Draft Defaults
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
    DEFAULT_PAYMENT_TERMS = os.getenv("DEFAULT_PAYMENT_TERMS", "Net 30")
    DUE_DAYS = int(os.getenv("DUE_DAYS", 30))
    DEFAULT_NOTES = os.getenv("DEFAULT_NOTES", "Thank you for your business!")

    # Issuer Profile (shown in the "From" block and email sign-off)
    ISSUER_NAME = os.getenv("ISSUER_NAME", "Humai Webs")
    ISSUER_ADDRESS = os.getenv("ISSUER_ADDRESS", "")
    ISSUER_EMAIL = os.getenv("ISSUER_EMAIL", "")
    ISSUER_PHONE = os.getenv("ISSUER_PHONE", "")
    ISSUER_ACCOUNT_TITLE = os.getenv("ISSUER_ACCOUNT_TITLE", "")
    ISSUER_ACCOUNT_NUMBER = os.getenv("ISSUER_ACCOUNT_NUMBER", "")
    ISSUER_BANK = os.getenv("ISSUER_BANK", "")

    @property
    def payment_information(self) -> List[str]:
        lines = []
        if self.ISSUER_ACCOUNT_TITLE:
            lines.append(f"Account Title: {self.ISSUER_ACCOUNT_TITLE}")
        if self.ISSUER_ACCOUNT_NUMBER:
            lines.append(f"Account Number: {self.ISSUER_ACCOUNT_NUMBER}")
        if self.ISSUER_BANK:
            lines.append(f"Bank: {self.ISSUER_BANK}")
        return lines

    def validate(self):
        """Validate configured draft defaults"""
        if self.DEFAULT_CURRENCY not in CURRENCY_SYMBOLS:
            raise ValueError(
                f"DEFAULT_CURRENCY must be one of {', '.join(CURRENCY_SYMBOLS)}, got {self.DEFAULT_CURRENCY!r}"
            )

        if self.DUE_DAYS < 0:
            raise ValueError("DUE_DAYS must not be negative.")

        if self.SESSION_CLEANUP_INTERVAL_MINUTES < 1:
            raise ValueError("SESSION_CLEANUP_INTERVAL_MINUTES must be at least 1.")

        if self.DEFAULT_PAYMENT_TERMS not in PAYMENT_TERMS:
            import warnings
            warnings.warn(f"DEFAULT_PAYMENT_TERMS {self.DEFAULT_PAYMENT_TERMS!r} is not one of the standard terms.")

config = Config()
