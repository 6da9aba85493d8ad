from __future__ import annotations

import os

from pydantic_settings import BaseSettings

_PACKAGE_DIR = os.path.dirname(__file__)


class Settings(BaseSettings):
    # Base vehicle silhouettes (sedan.png, suv.png, pickup.png, vehicle-skeleton.png)
    assets_dir: str = os.path.join(_PACKAGE_DIR, "assets", "vehicles")
    output_dir: str = os.path.join(_PACKAGE_DIR, "..", "..", "output")

    # Remote image references
    image_fetch_timeout: float = 15.0

    # Embedding profiles: bounding box (px) + JPEG quality
    logo_max_size: tuple[int, int] = (400, 200)
    logo_quality: int = 90
    watermark_max_size: tuple[int, int] = (600, 400)
    watermark_quality: int = 60
    photo_max_size: tuple[int, int] = (800, 600)
    photo_quality: int = 85

    # Overlay snapshots (px)
    body_diagram_size: tuple[int, int] = (700, 350)
    tire_diagram_size: tuple[int, int] = (700, 420)
    tire_label_offset: tuple[float, float] = (35.0, -25.0)

    # Report text
    default_company_name: str = "MTinspector"
    report_validity_days: int = 30

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8081",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "INSPECTION_",
    }


settings = Settings()
