
import asyncio
import json
import os
import sys
import uuid
from datetime import date, time
from sqlalchemy.future import select

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.core.config import settings
from app.core.db import SessionLocal, init_models
from app.modules.directory.models import Provider
from app.modules.payers.models import Payer
from app.modules.network.models import ProviderPayerNetwork, SupervisionRelationship
from app.modules.availability.models import ProviderAvailability

ORG_ID = uuid.UUID(settings.DEFAULT_ORG_ID)

def _hhmm(value: str) -> time:
    h, m = value.split(":")
    return time(int(h), int(m))

async def create_schedule_for_provider(db, provider_id, weekly):
    """
    Creates the weekly recurring blocks for a provider.
    weekly: {"1": [["09:00", "12:00"], ["13:00", "17:00"]], ...} keyed by day_of_week (0=Sunday).
    """
    print(f"    - Creating weekly schedule for provider {provider_id}...")
    for dow, blocks in weekly.items():
        for start, end in blocks:
            db.add(ProviderAvailability(
                org_id=ORG_ID,
                provider_id=provider_id,
                day_of_week=int(dow),
                start_time=_hhmm(start),
                end_time=_hhmm(end),
                is_recurring=True,
            ))
    print("      ...schedule created.")

async def get_or_create_payer(db, name, payer_data):
    result = await db.execute(select(Payer).where(Payer.org_id == ORG_ID, Payer.name == name))
    payer = result.scalars().first()
    if payer:
        print(f"  - Found existing payer '{name}' with ID: {payer.id}")
        return payer
    print(f"  - Payer '{name}' not found. Creating new one.")
    payer = Payer(
        org_id=ORG_ID,
        name=name,
        payer_type=payer_data.get('payer_type', 'insurance'),
        state=payer_data.get('state'),
        credentialing_status=payer_data.get('credentialing_status', 'approved'),
        effective_date=date.fromisoformat(payer_data['effective_date']) if payer_data.get('effective_date') else None,
    )
    db.add(payer)
    await db.flush()
    print(f"    ...created payer with ID: {payer.id}")
    return payer

async def main():
    """
    Seeds providers, payers, contracts and weekly schedules from a JSON file.
    """
    print("Starting demo seed...")
    await init_models()

    json_file_path = sys.argv[1] if len(sys.argv) > 1 else os.path.join(os.path.dirname(__file__), 'demo_providers.json')
    with open(json_file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    async with SessionLocal() as db:
        payers = {}
        for payer_data in data.get('payers', []):
            payers[payer_data['name']] = await get_or_create_payer(db, payer_data['name'], payer_data)

        providers = {}
        for doc in data.get('providers', []):
            key = f"{doc['first_name']} {doc['last_name']}"
            print(f"Processing provider: {key}")
            result = await db.execute(select(Provider).where(
                Provider.org_id == ORG_ID,
                Provider.first_name == doc['first_name'],
                Provider.last_name == doc['last_name'],
            ))
            provider = result.scalars().first()
            if provider:
                print(f"  - Provider '{key}' already exists. Skipping.")
                providers[key] = provider
                continue

            provider = Provider(
                org_id=ORG_ID,
                first_name=doc['first_name'],
                last_name=doc['last_name'],
                title=doc.get('title'),
                role=doc.get('role'),
                intakeq_practitioner_id=doc.get('intakeq_practitioner_id'),
                languages_spoken=doc.get('languages_spoken'),
                timezone=doc.get('timezone'),
            )
            db.add(provider)
            await db.flush()
            providers[key] = provider
            print(f"    ...created provider with ID: {provider.id}")

            await create_schedule_for_provider(db, provider.id, doc.get('weekly', {}))
            for payer_name in doc.get('in_network', []):
                db.add(ProviderPayerNetwork(
                    org_id=ORG_ID,
                    provider_id=provider.id,
                    payer_id=payers[payer_name].id,
                    effective_date=date.fromisoformat(doc.get('network_effective_date', '2024-01-01')),
                ))
                print(f"    ...in network with {payer_name}")

        for sup in data.get('supervision', []):
            db.add(SupervisionRelationship(
                org_id=ORG_ID,
                rendering_provider_id=providers[sup['rendering']].id,
                billing_provider_id=providers[sup['billing']].id,
                payer_id=payers[sup['payer']].id,
                supervision_level=sup.get('supervision_level', 'sign_off_only'),
                requires_co_visit=sup.get('requires_co_visit', False),
                effective_date=date.fromisoformat(sup.get('effective_date', '2024-01-01')),
            ))
            print(f"  - {sup['rendering']} supervised by {sup['billing']} for {sup['payer']}")

        print("\nCommitting all changes to the database...")
        await db.commit()
        print("Demo seed complete!")

if __name__ == "__main__":
    asyncio.run(main())
