import os
import sys
import django
import random
from datetime import date
from decimal import Decimal
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'selotroca.settings')
django.setup()

from marketplace import services
from marketplace.exceptions import MarketplaceError
from marketplace.gamification import calculate_level, calculate_tier
from marketplace.models import (
    AppSettings, Profile, StampCollection, CollectionItem, RedemptionOption
)
from marketplace.validators import COLLECTIONS, PORTUGAL_DISTRICTS

fake = Faker('pt_PT')


def create_settings():
    print("Creating global settings...")
    app_settings = AppSettings.load()
    if not app_settings.admin_device_phone:
        app_settings.admin_device_phone = '351912345678'
        app_settings.save()
    return app_settings


def create_profile(phone, display_name, district, points=0, **extra):
    level = calculate_level(points)
    profile, created = Profile.objects.get_or_create(
        phone=phone,
        defaults={
            'display_name': display_name,
            'district': district,
            'registration_complete': True,
            'points': points,
            'level': level,
            'tier': calculate_tier(level),
            **extra,
        }
    )
    if created:
        profile.set_unusable_password()
        profile.save()
    return profile


def create_profiles(num_profiles=15):
    print(f"Creating admin, test user and {num_profiles} random profiles...")

    admin = create_profile(
        '351912345678', 'Admin', 'Lisboa', points=100,
        email='admin@selotroca.pt', is_admin=True
    )
    maria = create_profile(
        '351923456789', 'Maria', 'Porto', points=50,
        email='maria@example.com'
    )

    profiles = [maria]
    for _ in range(num_profiles):
        phone = '3519' + ''.join(random.choices('1236', k=1)) + fake.unique.numerify('#######')
        profile = create_profile(
            phone,
            fake.first_name(),
            random.choice(PORTUGAL_DISTRICTS),
            points=random.randint(0, 1500),
        )
        profiles.append(profile)

    print(f"Created {len(profiles) + 1} profiles.")
    return admin, profiles


def create_collection(admin):
    print("Creating stamp collection...")

    collection, created = StampCollection.objects.get_or_create(
        name='MasterChef 2025',
        defaults={
            'description': 'Colecao MasterChef com utensilios de cozinha premium',
            'starts_at': date(2025, 1, 1),
            'ends_at': date(2025, 12, 31),
            'is_active': True,
            'sort_order': 1,
            'created_by': admin,
        }
    )
    if not created:
        return collection

    catalog = [
        ('Conjunto de Facas', '6 pecas em aco inox', [(20, Decimal('0')), (10, Decimal('4.99'))]),
        ('Panela de Pressao', '6L antiaderente', [(30, Decimal('0')), (15, Decimal('9.99'))]),
    ]

    for item_order, (name, subtitle, options) in enumerate(catalog, start=1):
        item = CollectionItem.objects.create(
            collection=collection,
            name=name,
            subtitle=subtitle,
            sort_order=item_order,
        )
        for option_order, (stamps, fee) in enumerate(options, start=1):
            RedemptionOption.objects.create(
                item=item,
                stamps_required=stamps,
                fee_euros=fee,
                label='So selos' if fee == 0 else 'Selos + taxa',
                sort_order=option_order,
            )

    print(f"Created collection {collection.name} with {len(catalog)} items.")
    return collection


def create_listings(profiles):
    print("Creating listings...")
    listings = []

    for profile in profiles:
        if random.random() < 0.3:
            continue

        listing_type = random.choice(['offer', 'request'])
        quantity = random.randint(1, 5)

        try:
            listing = services.create_listing(
                profile,
                listing_type,
                quantity,
                collection=random.choice(COLLECTIONS),
                notes=fake.sentence(nb_words=8),
            )
        except MarketplaceError as e:
            print(f"  Skipped listing for {profile}: {e.message}")
            continue

        if listing_type == 'offer' and random.random() < 0.5:
            services.confirm_sent(listing.id, profile)

        listings.append(listing)

    print(f"Created {len(listings)} listings.")
    return listings


def main():
    print("Starting database population...")

    create_settings()

    admin, profiles = create_profiles(num_profiles=15)

    create_collection(admin)

    create_listings(profiles)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
