import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from instawin.models import Base, Player, PrizeType, Promotion, Token
from instawin.models.utils import generate_unique_code, mask_phone, normalize_gender

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def _promotion(self, session, name="Model Promo", **kwargs):
        values = dict(
            name=name,
            status="active",
            start_at=NOW - timedelta(hours=1),
            end_at=NOW + timedelta(hours=1),
        )
        values.update(kwargs)
        promotion = Promotion(**values)
        session.add(promotion)
        session.flush()
        return promotion

    def test_promotion_json(self):
        with self.Session() as session:
            promotion = self._promotion(session, planned_tokens=10)
            session.commit()
            data = session.get(Promotion, promotion.id).to_json()
            self.assertEqual(data["name"], "Model Promo")
            self.assertEqual(data["status"], "active")
            self.assertEqual(data["planned_tokens"], 10)

    def test_promotion_default_status_is_draft(self):
        with self.Session() as session:
            promotion = Promotion(
                name="Draft Promo", start_at=NOW, end_at=NOW + timedelta(days=1)
            )
            session.add(promotion)
            session.flush()
            self.assertEqual(promotion.status, "draft")

    def test_promotion_window_must_be_ordered(self):
        with self.Session() as session:
            session.add(Promotion(name="Backwards", start_at=NOW, end_at=NOW - timedelta(hours=1)))
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_prize_type_stock_bounds(self):
        with self.assertRaises(ValueError):
            PrizeType(name="Negative", initial_stock=-1)
        with self.assertRaises(ValueError):
            PrizeType(name="Overfull", initial_stock=1, remaining_stock=2)
        self.assertEqual(PrizeType(name="Fresh", initial_stock=4).remaining_stock, 4)

    def test_prize_type_stock_check_in_database(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            prize = PrizeType(promotion=promotion, name="Cap", initial_stock=1)
            session.add(prize)
            session.flush()
            prize.remaining_stock = -1
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_available_for_skips_empty_prize_types(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            session.add_all(
                [
                    PrizeType(promotion=promotion, name="Left", initial_stock=2),
                    PrizeType(promotion=promotion, name="Gone", initial_stock=2, remaining_stock=0),
                ]
            )
            session.flush()
            names = [p.name for p in PrizeType.available_for(session, promotion.id)]
            self.assertEqual(names, ["Left"])

    def test_available_for_filters_gender_restricted_prizes(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            session.add_all(
                [
                    PrizeType(promotion=promotion, name="Open", initial_stock=2),
                    PrizeType(
                        promotion=promotion, name="Ladies", initial_stock=2, gender_restriction="F"
                    ),
                    PrizeType(
                        promotion=promotion, name="Gents", initial_stock=2, gender_restriction="M"
                    ),
                ]
            )
            players = {
                gender: Player(
                    promotion_id=promotion.id,
                    first_name="P",
                    last_name="Q",
                    phone=f"555 00{i}",
                    gender=gender,
                )
                for i, gender in enumerate(("F", "M", None))
            }
            session.add_all(players.values())
            session.flush()

            def names(player=None):
                return [p.name for p in PrizeType.available_for(session, promotion.id, player)]

            self.assertEqual(names(), ["Open", "Ladies", "Gents"])
            self.assertEqual(names(players["F"]), ["Open", "Ladies"])
            self.assertEqual(names(players["M"]), ["Open", "Gents"])
            self.assertEqual(names(players[None]), ["Open"])

            ladies = PrizeType.available_for(session, promotion.id)[1]
            self.assertEqual(ladies.to_json()["gender_restriction"], "F")

    def test_gender_values_are_normalized(self):
        self.assertEqual(normalize_gender(" female "), "F")
        self.assertEqual(normalize_gender("m"), "M")
        self.assertIsNone(normalize_gender("  "))
        self.assertIsNone(normalize_gender(None))
        with self.assertRaises(ValueError):
            normalize_gender("x")
        with self.assertRaises(ValueError):
            PrizeType(name="Odd", initial_stock=1, gender_restriction="other")

    def test_token_code_is_unique(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            session.add_all(
                [
                    Token(code="DUP-0001", promotion_id=promotion.id),
                    Token(code="DUP-0001", promotion_id=promotion.id),
                ]
            )
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_token_status_is_constrained(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            session.add(Token(code="BAD-0001", promotion_id=promotion.id, status="lost"))
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_player_phone_is_normalized_and_unique_per_promotion(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            player = Player(
                promotion_id=promotion.id,
                first_name="Mario",
                last_name="Rossi",
                phone="+39 (333) 123-4567",
            )
            session.add(player)
            session.flush()
            self.assertEqual(player.phone, "+393331234567")
            self.assertEqual(player.masked_phone, "*** *** 4567")
            self.assertIs(Player.get_by_phone(session, promotion.id, "+39 333 1234567"), player)

            session.add(
                Player(
                    promotion_id=promotion.id,
                    first_name="Other",
                    last_name="Person",
                    phone="+393331234567",
                )
            )
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_player_phone_needs_digits(self):
        with self.assertRaises(ValueError):
            Player(first_name="No", last_name="Phone", phone="n/a")

    def test_generate_unique_code_avoids_pending_duplicates(self):
        with self.Session() as session:
            promotion = self._promotion(session)
            codes = set()
            for _ in range(20):
                code = generate_unique_code("TKN", Token.code, session, length=4)
                session.add(Token(code=code, promotion_id=promotion.id))
                codes.add(code)
            self.assertEqual(len(codes), 20)
            self.assertTrue(all(c.startswith("TKN-") and len(c) == 8 for c in codes))

    def test_mask_phone(self):
        self.assertEqual(mask_phone(None), "*** ***")
        self.assertEqual(mask_phone("+393331234567"), "*** *** 4567")


if __name__ == "__main__":
    unittest.main()
