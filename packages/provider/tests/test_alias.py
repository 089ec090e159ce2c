"""AliasRegistry 单元测试

验证 Agent alias 路由、模型组透传、未知 alias 落到 main 组以及默认采样参数。
"""

from sylvia.provider.alias import AliasRegistry, AliasRoute


class TestAliasRegistry:
    def test_default_aliases(self):
        assert AliasRegistry().aliases() == ["analyst", "assessor", "planner"]

    def test_agent_aliases_map_to_groups(self):
        registry = AliasRegistry()
        assert registry.resolve("planner") == "main"
        assert registry.resolve("assessor") == "main"
        assert registry.resolve("analyst") == "cheap"

    def test_runtime_group_passthrough(self):
        registry = AliasRegistry()
        for group in ("cheap", "main", "fallback"):
            route = registry.route(group)
            assert route.group == group
            assert route.sampling() == {}

    def test_unknown_alias_falls_back_to_main(self):
        assert AliasRegistry().resolve("summarizer") == "main"
        assert AliasRegistry().resolve(None) == "main"

    def test_default_sampling(self):
        registry = AliasRegistry()
        assert registry.route("planner").sampling() == {"temperature": 0.3, "max_tokens": 2048}
        assert registry.route("assessor").sampling()["temperature"] == 0.4

    def test_custom_routes_replace_defaults(self):
        registry = AliasRegistry([AliasRoute(alias="planner", group="cheap")])
        assert registry.resolve("planner") == "cheap"
        assert registry.resolve("assessor") == "main"
        assert registry.aliases() == ["planner"]
