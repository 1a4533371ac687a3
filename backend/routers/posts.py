from typing import Dict, Iterable, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import require_admin, require_approved_member
from database import get_db
from models import Post, PostComment, PostLike, User
from schemas import CommentCreate, CommentResponse, PostCreate, PostResponse, UserResponse

router = APIRouter(prefix="/api/posts", tags=["posts"])


async def users_by_id(db: AsyncSession, ids: Iterable[str]) -> Dict[str, User]:
    """Batch-load users for embedding author/attendee details."""
    ids = set(ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def _get_post(db: AsyncSession, post_id: int) -> Post:
    result = await db.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


async def _count_by_post(db: AsyncSession, column, post_ids: List[int]) -> Dict[int, int]:
    if not post_ids:
        return {}
    result = await db.execute(
        select(column, func.count()).where(column.in_(post_ids)).group_by(column)
    )
    return {row[0]: row[1] for row in result.all()}


@router.get("", response_model=List[PostResponse])
async def list_posts(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """Community feed, newest first, with author and engagement counts."""
    result = await db.execute(
        select(Post).order_by(Post.created_at.desc(), Post.id.desc()).offset(skip).limit(limit)
    )
    posts = result.scalars().all()
    post_ids = [p.id for p in posts]

    authors = await users_by_id(db, (p.author_id for p in posts))
    likes = await _count_by_post(db, PostLike.post_id, post_ids)
    comments = await _count_by_post(db, PostComment.post_id, post_ids)

    items = []
    for post in posts:
        author = authors.get(post.author_id)
        items.append(
            PostResponse(
                id=post.id,
                author_id=post.author_id,
                content=post.content,
                type=post.type,
                created_at=post.created_at,
                author=UserResponse.model_validate(author) if author else None,
                likes=likes.get(post.id, 0),
                comments=comments.get(post.id, 0),
            )
        )
    return items


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    payload: PostCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    post = Post(author_id=admin.id, content=payload.content, type=payload.type)
    db.add(post)
    await db.commit()
    await db.refresh(post)
    return PostResponse(
        id=post.id,
        author_id=post.author_id,
        content=post.content,
        type=post.type,
        created_at=post.created_at,
        author=UserResponse.model_validate(admin),
    )


@router.post("/{post_id}/like", status_code=204)
async def like_post(
    post_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    """Like a post. Liking twice is harmless."""
    await _get_post(db, post_id)
    db.add(PostLike(post_id=post_id, user_id=user.id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()


@router.delete("/{post_id}/like", status_code=204)
async def unlike_post(
    post_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    await db.execute(
        delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user.id)
    )
    await db.commit()


@router.get("/{post_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    post_id: int,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    await _get_post(db, post_id)
    result = await db.execute(
        select(PostComment)
        .where(PostComment.post_id == post_id)
        .order_by(PostComment.created_at, PostComment.id)
    )
    comments = result.scalars().all()
    authors = await users_by_id(db, (c.author_id for c in comments))
    return [
        CommentResponse(
            id=c.id,
            post_id=c.post_id,
            author_id=c.author_id,
            content=c.content,
            created_at=c.created_at,
            author=UserResponse.model_validate(authors[c.author_id])
            if c.author_id in authors
            else None,
        )
        for c in comments
    ]


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    post_id: int,
    payload: CommentCreate,
    user: User = Depends(require_approved_member),
    db: AsyncSession = Depends(get_db),
):
    await _get_post(db, post_id)
    comment = PostComment(post_id=post_id, author_id=user.id, content=payload.content)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return CommentResponse(
        id=comment.id,
        post_id=comment.post_id,
        author_id=comment.author_id,
        content=comment.content,
        created_at=comment.created_at,
        author=UserResponse.model_validate(user),
    )
