import httpx
import pytest

import typedrest


class CustomClient(typedrest.HttpClient):
    pass


class CustomAsyncClient(typedrest.AsyncHttpClient):
    pass


class CustomRestClient(typedrest.RestClient):
    def get_item(self, item_id: int):
        return self.get(f"items/{item_id}")


def test_custom_client_instantiation():
    client = CustomClient()
    assert isinstance(client, typedrest.HttpClient)
    assert isinstance(client, CustomClient)
    client.close()


def test_custom_client_context_manager_returns_subclass():
    with CustomClient() as client:
        assert isinstance(client, CustomClient)


@pytest.mark.anyio
async def test_custom_async_client_instantiation():
    async with CustomAsyncClient() as async_client:
        assert isinstance(async_client, typedrest.AsyncHttpClient)
        assert isinstance(async_client, CustomAsyncClient)


def test_custom_rest_client():
    def app(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"path": request.url.path})

    with CustomRestClient(
        base_url="http://rest.test/api", transport=httpx.MockTransport(app)
    ) as client:
        assert client.get_item(7).result == {"path": "/api/items/7"}
