"""Site config defaults and roster persistence."""

from moonstore.core.config import SiteConf
from moonstore.services.site_config import SiteConfigStore
from moonstore.services.storage import StorageService
from moonstore.services.storage.models import AdminConfig, CatalogSource, SitePolicy, UserEntry


async def test_defaults(storage: StorageService) -> None:
    store = SiteConfigStore(storage, SiteConf(auto_clean_inactive_users=True, inactive_user_days=14), "root")

    policy = await store.get_policy()
    assert policy.auto_clean_inactive_users
    assert policy.inactive_user_days == 14  # noqa: PLR2004
    assert await store.get_roster() == [UserEntry(username="root", role="owner")]
    assert await store.get_sources() == []


async def test_no_root_user(storage: StorageService) -> None:
    store = SiteConfigStore(storage, SiteConf())
    assert await store.get_roster() == []


async def test_stored_config_wins(storage: StorageService) -> None:
    await storage.set_admin_config(AdminConfig(site_config=SitePolicy(inactive_user_days=30)))
    store = SiteConfigStore(storage, SiteConf(inactive_user_days=14), "root")

    assert (await store.get_policy()).inactive_user_days == 30  # noqa: PLR2004
    assert await store.get_roster() == []


async def test_save_roster_keeps_the_rest(storage: StorageService) -> None:
    sources = [
        CatalogSource(key="a", name="A", api="https://a.example.com/api"),
        CatalogSource(key="b", name="B", api="https://b.example.com/api", disabled=True),
    ]
    await storage.set_admin_config(AdminConfig(site_config=SitePolicy(inactive_user_days=30), source_config=sources))
    store = SiteConfigStore(storage, SiteConf())

    await store.save_roster([UserEntry(username="bob")])

    config = await store.get_config()
    assert config.site_config.inactive_user_days == 30  # noqa: PLR2004
    assert [entry.username for entry in config.user_config.users] == ["bob"]
    assert [source.key for source in await store.get_sources()] == ["a"]


def test_site_policy_days() -> None:
    assert SitePolicy(inactive_user_days=0).inactive_user_days == 7  # noqa: PLR2004
    assert SitePolicy(inactive_user_days=-3).inactive_user_days == 1
    assert SitePolicy(inactive_user_days=1000).inactive_user_days == 365  # noqa: PLR2004


def test_admin_config_ignores_unknown_sections() -> None:
    config = AdminConfig.model_validate_json('{"SiteConfig": {"SiteName": "x"}, "site_config": {"inactive_user_days": 9}}')
    assert config.site_config.inactive_user_days == 9  # noqa: PLR2004
