"""健康检查端点"""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(request: Request) -> dict[str, str]:
    """基本健康检查"""
    settings = request.app.state.settings

    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/version")
async def version_info(request: Request) -> dict[str, str]:
    """版本信息（读取当前应用实例的配置）"""
    settings = request.app.state.settings

    return {
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.env,
    }
