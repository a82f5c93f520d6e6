from fastapi import APIRouter
from pydantic import BaseModel

router = APIRouter()


class NavItem(BaseModel):
    title: str
    href: str
    icon: str
    active: bool = False


NAV_ITEMS = [
    ("Dashboard", "/dashboard", "layout-dashboard"),
    ("Quizzes", "/quizzes", "book-open"),
    ("Content", "/content", "file-text"),
    ("Progress", "/progress", "line-chart"),
]


def is_nav_active(pathname: str, href: str) -> bool:
    return pathname == href or pathname.startswith(href + "/")


@router.get("/nav", response_model=list[NavItem])
async def get_nav(pathname: str = ""):
    return [
        NavItem(title=title, href=href, icon=icon, active=is_nav_active(pathname, href))
        for title, href, icon in NAV_ITEMS
    ]
