"""Forge a character's identity anchors from a reference photo.

Runs the whole anchor pipeline (analyze, headshot, body, save) without the
HTTP server and writes the results to an output directory.

Usage:
    # Run from the project root
    python scripts/forge_character.py --name Ava --photo ava.jpg
    python scripts/forge_character.py --name Ava --photo ava.jpg --provider comet --out out/ava
    python scripts/forge_character.py --name Ava --photo ava.jpg --sheet "Winter parka"
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Make backend/ importable when run standalone
_BACKEND_PATH = Path(__file__).parent.parent / "backend"
if str(_BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(_BACKEND_PATH))

from identity_forge.core.config import EnvSettingsReader
from identity_forge.core.data_uri import parse_data_uri, to_data_uri
from identity_forge.core.errors import ForgeError
from identity_forge.models.character import CharacterDNA
from identity_forge.models.forge import AnchoredKind
from identity_forge.models.generation import Provider
from identity_forge.services.anchored import generate_for_character
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.pipeline import AnchorPipeline
from identity_forge.services.store import InMemoryCharacterStore

_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp"}


def load_photo(path: Path) -> str:
    """Read an image file into a data URI."""
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return to_data_uri(path.read_bytes(), mime_type)


def write_image(image: str, path: Path) -> Path:
    """Write a data URI image to ``path`` (extension chosen from its mime type)."""
    decoded = parse_data_uri(image)
    target = path.with_suffix(_EXTENSIONS.get(decoded.mime_type, ".png"))
    target.write_bytes(decoded.to_bytes())
    return target


async def forge(
    name: str,
    photo: Path,
    out_dir: Path,
    provider: Provider | None,
    model: str | None,
    sheet_outfit: str | None = None,
) -> CharacterDNA:
    """Run the pipeline end to end and write anchors plus character.json.

    With ``sheet_outfit`` set, a twelve-pose reference sheet is generated from
    the saved headshot as well.
    """
    dispatcher = ProviderDispatcher(EnvSettingsReader())
    store = InMemoryCharacterStore()
    pipeline = AnchorPipeline(dispatcher, provider=provider, model=model)
    pipeline.set_name(name)
    pipeline.upload_photo(load_photo(photo))

    print(f"Analyzing {photo} ...")
    await pipeline.analyze()
    pipeline.begin_generation()

    print("Generating headshot anchor ...")
    confirmed = await pipeline.generate_headshot()
    print("Generating body anchor ...")
    await pipeline.generate_body(confirmed)

    pipeline.review()
    character = pipeline.save(store)

    out_dir.mkdir(parents=True, exist_ok=True)
    print(f"Wrote {write_image(character.anchor_headshot, out_dir / 'headshot')}")
    print(f"Wrote {write_image(character.anchor_body, out_dir / 'body')}")
    character_path = out_dir / "character.json"
    character_path.write_text(character.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    print(f"Wrote {character_path}")

    if sheet_outfit is not None:
        print("Generating reference sheet ...")
        sheet = await generate_for_character(
            dispatcher, store, character, AnchoredKind.sheet, prompt=sheet_outfit, provider=provider, model=model
        )
        print(f"Wrote {write_image(sheet.image, out_dir / 'sheet')}")
    return character


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Forge headshot and body anchors for a character.")
    parser.add_argument("--name", required=True, help="Character name (1-50 characters).")
    parser.add_argument("--photo", required=True, type=Path, help="Reference photo of the character.")
    parser.add_argument("--out", type=Path, default=Path("data/characters"), help="Output directory.")
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=None,
        help="Generation provider (default: AI_PROVIDER setting).",
    )
    parser.add_argument("--model", default=None, help="Override the provider's image model.")
    parser.add_argument(
        "--sheet",
        metavar="OUTFIT",
        default=None,
        help="Also generate a 16:9 reference sheet with this outfit (\"\" for the default outfit).",
    )
    args = parser.parse_args()

    try:
        asyncio.run(
            forge(
                name=args.name,
                photo=args.photo,
                out_dir=args.out,
                provider=Provider(args.provider) if args.provider else None,
                model=args.model,
                sheet_outfit=args.sheet,
            )
        )
    except ForgeError as exc:
        print(f"Error: {exc.user_message}", file=sys.stderr)
        sys.exit(1)
