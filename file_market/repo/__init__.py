from __future__ import annotations

from file_market.repo.items import ItemsRepo
from file_market.repo.purchases import PurchasesRepo, VOTE_DOWN, VOTE_UP
from file_market.repo.shops import ShopsRepo
from file_market.repo.users import UsersRepo

__all__ = ["ItemsRepo", "PurchasesRepo", "ShopsRepo", "UsersRepo", "VOTE_UP", "VOTE_DOWN"]
