import pytest
import respx


@pytest.fixture(autouse=True)
def _isolate_global_respx_router():
    # routes registered on the global respx router must not leak between tests
    yield
    respx.mock.clear()
