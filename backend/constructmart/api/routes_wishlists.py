from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.wishlist_schema import WishlistIn, WishlistItemIn
from constructmart.security import get_current_user, get_current_user_optional
from constructmart.services.wishlist_service import WishlistService, wishlist_dict, wishlist_item_dict

router = APIRouter(prefix="/api/wishlists", tags=["wishlists"])


@router.get("", summary="List my wishlists")
def list_wishlists(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "wishlists": [wishlist_dict(w) for w in WishlistService(db).list(user)]}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create wishlist")
def create_wishlist(payload: WishlistIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    wishlist = WishlistService(db).create(user, payload)
    return {"success": True, "message": "Wishlist created", "wishlist": wishlist_dict(wishlist)}


@router.get("/{uid}", summary="Get wishlist")
def get_wishlist(
    uid: str,
    viewer: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    wishlist = WishlistService(db).get(uid, viewer)
    return {"success": True, "wishlist": wishlist_dict(wishlist, with_items=True)}


@router.post("/{uid}/items", status_code=status.HTTP_201_CREATED, summary="Add item to wishlist")
def add_item(
    uid: str,
    payload: WishlistItemIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = WishlistService(db).add_item(user, uid, payload)
    return {"success": True, "message": "Item added to wishlist", "wishlist_item": wishlist_item_dict(item)}


@router.delete("/{uid}/items/{item_uid}", summary="Remove item from wishlist")
def remove_item(uid: str, item_uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    wishlist = WishlistService(db).remove_item(user, uid, item_uid)
    return {"success": True, "message": "Item removed from wishlist", "wishlist": wishlist_dict(wishlist)}
