"""
Company Settings Endpoints
"""

from fastapi import APIRouter, Depends

from intelliservice.services.company_settings import CompanySettingsProvider, get_company_settings_provider

router = APIRouter()


@router.get("")
def get_company(provider: CompanySettingsProvider = Depends(get_company_settings_provider)):
    """Current company branding snapshot"""
    return provider.snapshot.to_dict()


@router.post("/refresh")
async def refresh_company(provider: CompanySettingsProvider = Depends(get_company_settings_provider)):
    """Reload company branding from settings"""
    settings = await provider.refresh()
    return settings.to_dict()
