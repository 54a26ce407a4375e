from helpers.embeds import PANEL_TITLE, create_panel_embed, create_preset_embed, create_stats_embed
from services.presets import PRESETS, can_use_preset, get_preset, preset_summary
from tests.factories import LOBBY_ID, FakeGuild, FakeRole, make_member


def test_get_preset_is_case_insensitive() -> None:
    assert get_preset(" Gaming ").key == "gaming"
    assert get_preset("nope") is None
    assert get_preset(None) is None


def test_presets_stay_within_platform_limits() -> None:
    for preset in PRESETS.values():
        assert 8 <= preset.bitrate_kbps <= 384
        assert 0 <= preset.user_limit <= 99


def test_everyone_flags_follow_privacy() -> None:
    flags = get_preset("private").everyone_flags()
    assert flags == {"connect": False, "view_channel": False, "send_messages": False}
    assert get_preset("open").everyone_flags() == {
        "connect": True,
        "view_channel": True,
        "send_messages": True,
    }


def test_role_gated_preset() -> None:
    guild = FakeGuild()
    vip = get_preset("vip")
    plain = make_member(guild, "plain")
    fan = make_member(guild, "fan", roles=[FakeRole(name="VIP Members")])
    staff = make_member(guild, "staff", roles=[FakeRole(name="Staff", manage_channels=True)])

    assert not can_use_preset(plain, vip)
    assert can_use_preset(fan, vip)
    assert can_use_preset(staff, vip)
    assert can_use_preset(plain, get_preset("gaming"))


def test_preset_summary() -> None:
    assert preset_summary(get_preset("default")) == "64 kbps · Unlimited · 🌐 Public"
    assert "🔒 Locked" in preset_summary(get_preset("meeting"))


def test_embeds() -> None:
    panel = create_panel_embed(LOBBY_ID)
    assert panel.title == PANEL_TITLE
    assert str(LOBBY_ID) in panel.description
    assert len(create_preset_embed().fields) == len(PRESETS)

    stats = create_stats_embed({"active_channels": 3, "lifecycle": {"created": 5}})
    values = [field.value for field in stats.fields]
    assert "3" in values
    assert any("5 created" in v for v in values)
