"""
Script para publicar un evento de actualización de perfil.

Sirve para probar el consumidor a mano. Sin --file publica un
perfil de ejemplo.

Uso:
    python -m matchmaker.scripts.publish_profile --user-id user-123
    python -m matchmaker.scripts.publish_profile --user-id user-123 --file perfil.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from matchmaker.config import get_settings
from matchmaker.events import ProfileUpdatePublisher, create_event_log
from matchmaker.log import configure_logging
from matchmaker.models import UserProfile

logger = structlog.get_logger()


def sample_profile(user_id: str) -> UserProfile:
    return UserProfile(
        user_id=user_id,
        tags=["golang", "backend", "microservices", "docker"],
        industries=["technology", "software", "fintech"],
        experience=5,
        interests=["open source", "cloud computing", "distributed systems"],
        location="San Francisco, CA",
        bio="Backend developer with 5 years of experience in Go and microservices",
        skills=["Go", "PostgreSQL", "Redis", "Docker", "Kubernetes"],
    )


def load_profile(user_id: str, path: Optional[Path]) -> UserProfile:
    if path is None:
        return sample_profile(user_id)

    data = json.loads(path.read_text(encoding="utf-8"))
    data["user_id"] = user_id
    return UserProfile.model_validate(data)


async def publish(profile: UserProfile) -> str:
    settings = get_settings()
    event_log = create_event_log(settings)
    try:
        publisher = ProfileUpdatePublisher(event_log, settings.profile_updates_stream)
        return await publisher.publish(profile)
    finally:
        await event_log.close()


def main():
    parser = argparse.ArgumentParser(
        description="Publica un evento de perfil actualizado en el event log"
    )
    parser.add_argument("--user-id", required=True, help="ID del usuario")
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="JSON con el perfil (sin el archivo se usa un perfil de ejemplo)",
    )
    args = parser.parse_args()

    configure_logging(get_settings().log_level)

    try:
        profile = load_profile(args.user_id, args.file)
    except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
        logger.error("Perfil inválido", file=str(args.file), error=str(e))
        sys.exit(2)

    try:
        record_id = asyncio.run(publish(profile))
        print(record_id)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Publicación interrumpida por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal publicando evento", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
