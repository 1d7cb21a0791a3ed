from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from instawin.db.engine import make_engine
from instawin.models import Base, EngineConfig, PrizeType, Promotion
from instawin.allocation.config import EngineSettings
from instawin.workflows import issue_tokens, register_player


def main() -> None:
    """Seed the development database with an active demo promotion."""
    engine = make_engine()

    # Drop and recreate all tables. Foreign keys are switched off so the
    # RESTRICT references from the play ledger do not block the reset.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        promotion = Promotion(
            name="Summer Scratch 2026",
            description="Scan the code under the cap and play for an instant prize.",
            status="active",
            start_at=now - timedelta(hours=1),
            end_at=now + timedelta(hours=8),
            planned_tokens=500,
        )
        session.add(promotion)
        session.flush()

        session.add_all(
            [
                PrizeType(
                    promotion=promotion,
                    name="Beach Towel",
                    initial_stock=20,
                    weight=3,
                    priority=2,
                ),
                PrizeType(
                    promotion=promotion,
                    name="Sunglasses",
                    initial_stock=10,
                    weight=2,
                    priority=1,
                ),
                PrizeType(
                    promotion=promotion,
                    name="Weekend Trip",
                    initial_stock=1,
                    priority=0,
                ),
                PrizeType(
                    promotion=promotion,
                    name="Spa Voucher",
                    initial_stock=5,
                    priority=3,
                    gender_restriction="F",
                ),
            ]
        )

        session.add(
            EngineConfig(
                promotion=promotion,
                settings=EngineSettings.from_options(
                    {"forceWinEnabled": True, "loggingEnabled": True}
                ),
            )
        )
        session.flush()

        tokens = issue_tokens(session, promotion, 50)

        register_player(
            session,
            promotion,
            first_name="Mario",
            last_name="Rossi",
            phone="+39 333 1234567",
            gender="M",
        )
        register_player(
            session,
            promotion,
            first_name="Giulia",
            last_name="Bianchi",
            phone="+39 347 7654321",
            gender="F",
        )

        print(f"Seeded promotion '{promotion.name}' (id={promotion.id})")
        print("First tokens:")
        for token in tokens[:5]:
            print(f"  {token.code}")

    print("Development database seeded.")


if __name__ == "__main__":
    main()
