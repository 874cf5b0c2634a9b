# Minimal ERC-721 ABIs (only the read functions we call).

ERC165_ABI = [
    {
        "name": "supportsInterface",
        "type": "function",
        "inputs": [{"name": "interfaceId", "type": "bytes4"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
    },
]

ERC721_READ_ABI = ERC165_ABI + [
    {
        "name": "name",
        "type": "function",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
    },
    {
        "name": "totalSupply",
        "type": "function",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "name": "tokenByIndex",
        "type": "function",
        "inputs": [{"name": "index", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "name": "tokenURI",
        "type": "function",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
    },
    {
        "name": "ownerOf",
        "type": "function",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {
        "name": "isApprovedForAll",
        "type": "function",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
    },
    {
        "name": "owner",
        "type": "function",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
]

# ERC-165 interface ids
ERC721_INTERFACE_ID = "80ac58cd"
ERC721_ENUMERABLE_INTERFACE_ID = "780e9d63"
ERC721_METADATA_INTERFACE_ID = "5b5e139f"

# Function signatures used for bytecode probing when ERC-165 is not implemented.
SIG_NAME = "name()"
SIG_TOTAL_SUPPLY = "totalSupply()"
SIG_TOKEN_BY_INDEX = "tokenByIndex(uint256)"
SIG_TOKEN_URI = "tokenURI(uint256)"
SIG_OWNER_OF = "ownerOf(uint256)"
SIG_IS_APPROVED_FOR_ALL = "isApprovedForAll(address,address)"
SIG_OWNER = "owner()"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
