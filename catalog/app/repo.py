import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lugx_common.errors import ConflictError, NotFoundError, ValidationError
from lugx_common.sql import UpdateBuilder

from .models import Game
from .schemas import GameIn

UPDATABLE = ("name", "category", "price", "description", "featured")
NOT_NULL = ("name", "category", "price", "featured")
FEATURED_LIMIT = 10

SEED_GAMES = [
    ("Fortnite", "Battle Royale", Decimal("0.00"), "Epic Battle Royale with building", True),
    ("Call of Duty: MW3", "FPS", Decimal("69.99"), "Latest Call of Duty installment", True),
    ("Minecraft", "Sandbox", Decimal("26.95"), "Block-building creative game", True),
    ("Cyberpunk 2077", "RPG", Decimal("39.99"), "Futuristic open-world RPG", False),
    ("The Witcher 3", "RPG", Decimal("19.99"), "Epic fantasy adventure", True),
]

DUPLICATE_NAME = "Game with this name already exists"


class GameRepo:
    def __init__(self, db: Session):
        self.db = db

    def list_games(self, featured: Optional[bool] = None, category: Optional[str] = None, limit: int = 50) -> List[Game]:
        stmt = select(Game)
        if featured is not None:
            stmt = stmt.where(Game.featured == featured)
        if category:
            stmt = stmt.where(func.lower(Game.category).contains(category.lower(), autoescape=True))
        stmt = stmt.order_by(Game.created_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def featured(self) -> List[Game]:
        stmt = select(Game).where(Game.featured.is_(True)).limit(FEATURED_LIMIT)
        return list(self.db.execute(stmt).scalars().all())

    def get_game(self, game_id: uuid.UUID) -> Game:
        game = self.db.get(Game, game_id)
        if game is None:
            raise NotFoundError("Game not found")
        return game

    def create_game(self, payload: GameIn) -> Game:
        game = Game(**payload.model_dump())
        self.db.add(game)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(DUPLICATE_NAME)
        self.db.refresh(game)
        return game

    def update_game(self, game_id: uuid.UUID, fields: dict) -> Game:
        game = self.get_game(game_id)

        builder = UpdateBuilder(Game.__table__, UPDATABLE).update_from(fields)
        if not len(builder):
            raise ValidationError("No fields to update")
        nulls = [column for column, value in builder.pairs if column in NOT_NULL and value is None]
        if nulls:
            raise ValidationError("Fields cannot be null", fields=nulls)

        try:
            self.db.execute(builder.build(Game.id == game.id))
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(DUPLICATE_NAME)
        self.db.refresh(game)
        return game

    def delete_game(self, game_id: uuid.UUID) -> Game:
        game = self.get_game(game_id)
        self.db.delete(game)
        self.db.flush()
        return game

    def seed(self) -> int:
        """Insert the starter catalogue, skipping names that already exist."""
        existing = set(self.db.execute(select(Game.name)).scalars().all())
        added = 0
        for name, category, price, description, featured in SEED_GAMES:
            if name in existing:
                continue
            self.db.add(Game(name=name, category=category, price=price, description=description, featured=featured))
            added += 1
        self.db.flush()
        return added
