import pytest
from web3.exceptions import ContractLogicError

from chain.abi import (
    ERC721_ENUMERABLE_INTERFACE_ID,
    ERC721_INTERFACE_ID,
    SIG_OWNER,
    SIG_TOKEN_BY_INDEX,
    SIG_TOTAL_SUPPLY,
    ZERO_ADDRESS,
)
from chain.errors import RpcConfigError, RpcError, UnsupportedContract
from chain.rpc_gateway import ChainGateway, _selector
from config.rpc import RpcPoolConfig
from fakes import CONTRACT, OPERATOR, OWNER


class FakeCall:
    def __init__(self, fn):
        self.fn = fn

    def call(self):
        return self.fn()


class FakeFunctions:
    def __init__(self, contract):
        self.contract = contract

    def __getattr__(self, name):
        def bound(*args):
            return FakeCall(lambda: self.contract.invoke(name, args))
        return bound


class FakeContract:
    def __init__(self, address, impl, interfaces):
        self.address = address
        self.impl = impl
        self.interfaces = interfaces
        self.functions = FakeFunctions(self)

    def invoke(self, name, args):
        if name == "supportsInterface":
            return args[0].hex() in self.interfaces
        if name not in self.impl:
            raise ContractLogicError("execution reverted")
        value = self.impl[name]
        return value(*args) if callable(value) else value


class FakeEth:
    def __init__(self, impl, interfaces, code=b""):
        self.impl = impl
        self.interfaces = interfaces
        self.code = code

    def contract(self, address, abi):
        return FakeContract(address, self.impl, self.interfaces)

    def get_code(self, address):
        return self.code


class FakeWeb3:
    def __init__(self, impl=None, interfaces=(), code=b""):
        self.eth = FakeEth(impl or {}, set(interfaces), code)


def _gateway(w3):
    made = []

    def factory(url, pool):
        made.append(url)
        return w3

    gw = ChainGateway(
        pool_resolver=lambda n: RpcPoolConfig(n, ["https://rpc.example"]) if n == "ethereum" else None,
        web3_factory=factory,
    )
    return gw, made


def test_enumerates_ids_through_erc165():
    w3 = FakeWeb3({"totalSupply": 3, "tokenByIndex": lambda i: 10 + i}, [ERC721_ENUMERABLE_INTERFACE_ID])
    gw, made = _gateway(w3)
    assert gw.get_token_ids("ethereum", "erc721", CONTRACT) == {"10", "11", "12"}
    assert gw.get_total_supply("ethereum", "ERC721", CONTRACT) == 3
    assert made == ["https://rpc.example"]


def test_bytecode_fallback_when_erc165_missing():
    code = b"\x60\x80" + _selector(SIG_TOTAL_SUPPLY) + b"\x00" + _selector(SIG_TOKEN_BY_INDEX)
    w3 = FakeWeb3({"totalSupply": 1, "tokenByIndex": lambda i: 7}, [], code)
    gw, _ = _gateway(w3)
    assert gw.get_token_ids("ethereum", "erc721", CONTRACT) == {"7"}


def test_non_enumerable_contract_is_unsupported():
    code = _selector(SIG_TOTAL_SUPPLY)
    gw, _ = _gateway(FakeWeb3({"totalSupply": 1}, [], code))
    with pytest.raises(UnsupportedContract):
        gw.get_token_ids("ethereum", "erc721", CONTRACT)


def test_only_erc721_kind_is_supported():
    gw, _ = _gateway(FakeWeb3())
    with pytest.raises(UnsupportedContract):
        gw.get_contract_name("ethereum", "erc1155", CONTRACT)


def test_unconfigured_network_is_config_error():
    gw, _ = _gateway(FakeWeb3())
    with pytest.raises(RpcConfigError):
        gw.owner_of("solana", CONTRACT, "1")


def test_invalid_address_is_unsupported():
    gw, _ = _gateway(FakeWeb3())
    with pytest.raises(UnsupportedContract):
        gw.owner_of("ethereum", "not-an-address", "1")


def test_owner_of_not_minted_is_none():
    gw, _ = _gateway(FakeWeb3({}, [ERC721_INTERFACE_ID]))
    assert gw.owner_of("ethereum", CONTRACT, "1") is None
    gw, _ = _gateway(FakeWeb3({"ownerOf": ZERO_ADDRESS}, [ERC721_INTERFACE_ID]))
    assert gw.owner_of("ethereum", CONTRACT, "1") is None


def test_owner_of_returns_owner():
    gw, _ = _gateway(FakeWeb3({"ownerOf": lambda tid: OWNER if tid == 5 else None}, [ERC721_INTERFACE_ID]))
    assert gw.owner_of("ethereum", CONTRACT, "5") == OWNER


def test_transport_failure_is_rpc_error():
    def down(*args):
        raise ConnectionError("connection refused")

    gw, _ = _gateway(FakeWeb3({"ownerOf": down, "isApprovedForAll": down}, [ERC721_INTERFACE_ID]))
    with pytest.raises(RpcError):
        gw.owner_of("ethereum", CONTRACT, "1")
    with pytest.raises(RpcError):
        gw.is_approved_for_all("ethereum", CONTRACT, OWNER, OPERATOR)


def test_contract_owner_absent_is_none():
    gw, _ = _gateway(FakeWeb3({}, [], b"\x00"))
    assert gw.contract_owner("ethereum", CONTRACT) is None
    gw, _ = _gateway(FakeWeb3({"owner": OWNER}, [], _selector(SIG_OWNER)))
    assert gw.contract_owner("ethereum", CONTRACT) == OWNER


def test_non_numeric_token_id_rejected():
    gw, _ = _gateway(FakeWeb3({}, [ERC721_INTERFACE_ID]))
    with pytest.raises(ValueError):
        gw.owner_of("ethereum", CONTRACT, "abc")
