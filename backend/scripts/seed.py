"""
Database Seed Script
Creates reference data (style guides, a context template, characters) for development
"""

import sys

# Add parent directory to path
sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from sqlalchemy.orm import Session

from inteligencia.config import VERTICALS
from inteligencia.models import (
    Base,
    Character,
    ContextTemplate,
    ReferenceImage,
    ReferenceImageType,
    StyleGuide,
    StyleGuideType,
)
from inteligencia.utils.database import get_sync_db

BRAND_VOICE = (
    "Inteligencia writes with confident, plain language. Prefer short paragraphs, "
    "concrete examples and an optimistic but never hyped tone. Avoid jargon unless "
    "the audience is technical."
)

VERTICAL_GUIDES = {
    "hospitality": "Lead with guest experience and memorable moments; mention seasonality.",
    "healthcare": "Be precise and reassuring; never make medical claims or promises.",
    "tech": "Be specific about outcomes and integrations; numbers beat adjectives.",
    "athletics": "Energetic and motivational; center the athlete and the community.",
    "shopping": "Highlight value, discovery and convenience; keep calls to action clear.",
    "social_media": "Snappy hooks, skimmable structure and platform-native phrasing.",
}


def create_reference_data(db: Session):
    """Create all reference data"""
    print("Creating reference data...")

    brand = StyleGuide(
        name="Inteligencia Brand Voice",
        type=StyleGuideType.BRAND.value,
        content=BRAND_VOICE,
        description="Default brand voice for every vertical",
        active=True,
        version=1,
        usage_count=0,
    )
    db.add(brand)
    db.flush()
    print(f"  Created style guide: {brand.name}")

    vertical_guides = []
    for vertical in VERTICALS:
        guide = StyleGuide(
            name=f"{vertical.replace('_', ' ').title()} Guidelines",
            type=StyleGuideType.VERTICAL.value,
            vertical=vertical,
            content=VERTICAL_GUIDES[vertical],
            active=True,
            version=1,
            usage_count=0,
        )
        db.add(guide)
        vertical_guides.append(guide)
    db.flush()
    print(f"  Created {len(vertical_guides)} vertical style guides")

    for guide in vertical_guides:
        db.add(ContextTemplate(
            name=f"{guide.name} Blog",
            description=f"Brand voice plus {guide.vertical} guidance",
            style_guide_ids=[str(brand.id), str(guide.id)],
            vertical=guide.vertical,
            usage_count=0,
        ))
    print(f"  Created {len(vertical_guides)} context templates")

    characters = [
        Character(
            name="Maya",
            description="Marketing lead at a boutique hotel group",
            personality="Curious, practical, time-poor",
            active=True,
            usage_count=0,
        ),
        Character(
            name="Dr. Patel",
            description="Clinic owner evaluating patient communication tools",
            personality="Careful, evidence-driven",
            active=True,
            usage_count=0,
        ),
    ]
    for character in characters:
        db.add(character)
    print(f"  Created {len(characters)} characters")

    db.add(ReferenceImage(
        name="Brand palette",
        url="https://inteligencia.example/brand/palette.png",
        type=ReferenceImageType.STYLE.value,
        description="Warm neutrals with a teal accent",
        usage_count=0,
    ))

    db.commit()
    print("\nSeed data created successfully!")


def main():
    """Main entry point"""
    print("Connecting to database...")
    db = get_sync_db()

    try:
        print("Creating tables...")
        Base.metadata.create_all(db.get_bind())

        # Check if data already exists
        existing = db.query(StyleGuide).filter(StyleGuide.name == "Inteligencia Brand Voice").first()
        if existing:
            print("Reference data already exists. Skipping seed.")
            return

        create_reference_data(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
