from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # Logging
    log_level: str = "INFO"

    # Narrative / resource language tag
    narrative_language: str = "en-IN"

    # Identifier systems
    patient_identifier_system: str = "https://healthid.ndhm.gov.in"
    secondary_identifier_system: str = "https://abdm.gov.in/abha"
    external_address_scheme: str = "abha"  # telecom url becomes abha://<address>
    default_phone_country_code: str = "+91"

    # Attachments
    allowed_attachment_types: List[str] = ["application/pdf", "image/jpeg", "image/png"]
    default_attachment_type: str = "application/pdf"
    # Minimal PDF header embedded when no file is uploaded
    placeholder_attachment_data: str = "JVBERi0xLjQKJeLjz9MK"
    placeholder_attachment_title: str = "placeholder.pdf"

    # Patient roster (external collaborator)
    roster_url: Optional[str] = None
    roster_timeout: float = 10.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
