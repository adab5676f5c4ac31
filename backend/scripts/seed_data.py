"""
Seed script to generate a demo user with categories, contacts, bank accounts
and a processed bank statement ready for batch initiation
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session
from app.database import SessionLocal, engine, Base
from app.models.user import User
from app.models.category import Category
from app.models.bank_account import BankAccount
from app.models.document import Document
from app.services.entity_resolver import EntityResolver, CONTACT
from app.utils.matching_rules import normalize_name, generate_name_variations, category_style
from datetime import date, timedelta
from faker import Faker

fake = Faker()

SYSTEM_CATEGORIES = [
    "Food & Dining",
    "Groceries",
    "Transportation",
    "Utilities",
    "Rent",
    "Entertainment",
    "Shopping",
    "Health",
    "Salary",
    "Transfers",
    "Bank Charges",
]

BANKS = ("Access Bank", "GTBank", "First Bank", "Zenith Bank", "Kuda", "Opay")


def create_user(db: Session) -> User:
    """Create the demo user"""
    user = User(
        name=fake.name(),
        default_currency="NGN",
        custom_context_prompt="Transfers between my own accounts are savings, not expenses.",
    )
    db.add(user)
    db.commit()
    return user


def create_system_categories(db: Session) -> list[Category]:
    """Create shared system categories (no owner)"""
    categories = []
    for name in SYSTEM_CATEGORIES:
        existing = db.query(Category).filter(
            Category.user_id.is_(None),
            Category.normalized_name == normalize_name(name)
        ).first()
        if existing:
            categories.append(existing)
            continue

        icon, color = category_style(name)
        category = Category(
            user_id=None,
            name=name,
            normalized_name=normalize_name(name),
            name_variations=generate_name_variations(name),
            icon=icon,
            color=color,
            is_system=True,
        )
        db.add(category)
        categories.append(category)
    db.commit()
    return categories


def create_bank_accounts(db: Session, user: User, count: int = 2) -> list[BankAccount]:
    """Create bank accounts for the user; the first is primary"""
    accounts = []
    for i, bank_name in enumerate(fake.random_elements(elements=BANKS, length=count, unique=True)):
        account = BankAccount(
            user_id=user.id,
            account_name=user.name,
            account_number=fake.numerify(text="##########"),
            bank_name=bank_name,
            account_type=fake.random_element(elements=("savings", "current")),
            currency=user.default_currency,
            is_primary=i == 0,
        )
        db.add(account)
        accounts.append(account)
    db.commit()
    return accounts


def create_contacts(db: Session, user: User, count: int = 6) -> list:
    """Create contacts through the resolver so variations are seeded"""
    resolver = EntityResolver(db)
    contacts = []
    for _ in range(count):
        name = fake.random_element(elements=(fake.name(), fake.company()))
        resolution = resolver.resolve(name, CONTACT, user.id)
        contacts.append(resolution.entity)
    db.commit()
    return contacts


def create_statement(db: Session, user: User, accounts: list[BankAccount], contacts: list) -> Document:
    """Create a processed bank statement with a few dated transactions"""
    account = accounts[0]
    lines = [f"{account.bank_name} - Account Statement", f"Account: {account.account_number}", ""]
    day = date.today() - timedelta(days=30)
    for contact in contacts[:4]:
        day += timedelta(days=fake.random_int(min=1, max=6))
        amount = fake.random_int(min=1500, max=250000)
        direction = fake.random_element(elements=("DR", "CR"))
        lines.append(f"{day.isoformat()}  {direction}  NGN {amount:,}.00  TRF/{contact.name.upper()}")
    lines.append("")
    lines.append("Closing balance: NGN " + f"{fake.random_int(min=10000, max=900000):,}.00")
    raw_text = "\n".join(lines)

    document = Document(
        user_id=user.id,
        filename="statement.pdf",
        raw_text=raw_text,
        document_type="bank_statement",
        transaction_count=min(len(contacts), 4),
        detection_confidence=0.9,
        detection={"document_type": "bank_statement", "processing_mode": "sequential"},
        processing_status="processed",
    )
    db.add(document)
    db.commit()
    return document


def main():
    """Main seeding function"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        print("Creating user...")
        user = create_user(db)
        print(f"Created user {user.id}")

        print("Creating system categories...")
        categories = create_system_categories(db)
        print(f"Created {len(categories)} categories")

        print("Creating bank accounts...")
        accounts = create_bank_accounts(db, user)
        print(f"Created {len(accounts)} bank accounts")

        print("Creating contacts...")
        contacts = create_contacts(db, user)
        print(f"Created {len(contacts)} contacts")

        print("Creating bank statement...")
        document = create_statement(db, user, accounts, contacts)

        print("\nSeeding complete!")
        print(f"Summary:")
        print(f"  - User: {user.id} (send as X-User-Id)")
        print(f"  - Categories: {len(categories)}")
        print(f"  - Bank accounts: {len(accounts)}")
        print(f"  - Contacts: {len(contacts)}")
        print(f"  - Document ready for /api/sequential/initiate: {document.id}")

    except Exception as e:
        print(f"Error during seeding: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
