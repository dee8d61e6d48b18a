"""Unit tests for the context_search tool contract."""

from codectx.tools import ContextSearchInput, create_context_search_tool, perform_context_search

PROJECT = {
    "src/util.ts": "export function foo(x: number): number {\n  return x * 2;\n}\n",
    "src/main.ts": "import { foo } from './util';\nexport function main() {\n  return foo(1);\n}\n",
}


class TestPerformContextSearch:
    """Test the library function used for prefetching."""

    def test_returns_formatted_context(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        out = perform_context_search(service, "explain foo")
        assert out.startswith("Found ")
        assert "src/util.ts" in out
        assert "```typescript" in out

    def test_empty_index(self, service_factory):
        service = service_factory({})
        assert perform_context_search(service, "anything") == "No relevant context found."

    def test_errors_become_messages(self, service_factory):
        service = service_factory(PROJECT)

        def broken(*args, **kwargs):
            raise RuntimeError("index unavailable")

        service.render_context = broken
        assert perform_context_search(service, "foo") == "Context search error: index unavailable"


class TestContextSearchTool:
    """Test the LangChain tool wrapper."""

    def test_tool_metadata(self, service_factory):
        tool = create_context_search_tool(service_factory(PROJECT))
        assert tool.name == "context_search"
        assert tool.args_schema is ContextSearchInput
        assert "relevant" in tool.description

    def test_invoke(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        tool = create_context_search_tool(service)
        out = tool.invoke({"query": "what does this do", "current_file": "src/main.ts"})
        assert "src/main.ts" in out
        assert "Active file" in out
