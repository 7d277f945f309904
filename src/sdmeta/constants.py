"""Shared constants for container parsing, vendor detection, and carriers.

All modules reference these constants rather than hard-coding values,
so adding a new generation tool or carrier keyword requires updating
only this file (plus the vendor module that decodes it).
"""

# Container signatures
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SOI = b"\xff\xd8"
RIFF_SIGNATURE = b"RIFF"
WEBP_MARKER = b"WEBP"

# Supported file suffixes (used by the CLI and the re-encoder)
SUPPORTED_FORMATS = {".png", ".jpg", ".jpeg", ".webp"}

# PNG chunk types
PNG_IHDR = b"IHDR"
PNG_IEND = b"IEND"
PNG_TEXT = b"tEXt"
PNG_ZTXT = b"zTXt"
PNG_ITXT = b"iTXt"
PNG_EXIF = b"eXIf"
PNG_MAX_INFLATED_TEXT = 1 << 24  # zTXt/iTXt text larger than this is not inflated

# JPEG markers
JPEG_MARKER_APP0 = 0xE0
JPEG_MARKER_APP1 = 0xE1
JPEG_MARKER_COM = 0xFE
JPEG_MARKER_SOS = 0xDA
JPEG_MARKER_EOI = 0xD9
JPEG_STANDALONE_MARKERS = frozenset({0x01, *range(0xD0, 0xD8)})  # TEM, RSTn
JPEG_SOF_MARKERS = frozenset(set(range(0xC0, 0xD0)) - {0xC4, 0xC8, 0xCC})
JPEG_MAX_SEGMENT_PAYLOAD = 65533  # 0xFFFF minus the 2-byte length field
EXIF_HEADER = b"Exif\x00\x00"
XMP_HEADER = b"http://ns.adobe.com/xap/1.0/\x00"

# WebP chunk FourCCs
WEBP_EXIF = b"EXIF"
WEBP_XMP = b"XMP "
WEBP_VP8 = b"VP8 "
WEBP_VP8L = b"VP8L"
WEBP_VP8X = b"VP8X"
WEBP_VP8X_EXIF_FLAG = 0x08
WEBP_VP8X_XMP_FLAG = 0x04

# UserComment charset prefixes (EXIF 2.3, 8 bytes)
USER_COMMENT_UNICODE = b"UNICODE\x00"
USER_COMMENT_ASCII = b"ASCII\x00\x00\x00"
USER_COMMENT_JIS = b"JIS\x00\x00\x00\x00\x00"
USER_COMMENT_UNDEFINED = b"\x00" * 8

# Text-chunk keywords that carry generation metadata, in extraction priority
CARRIER_KEYWORDS = [
    "parameters",  # A1111 family, SwarmUI, Civitai
    "Comment",  # NovelAI JSON, JPEG/WebP UserComment and COM
    "prompt",  # ComfyUI API graph
    "workflow",  # ComfyUI editor graph
    "invokeai_metadata",  # InvokeAI
    "generation_data",  # TensorArt
    "smproj",  # Stability Matrix project
    "parameters-json",  # Stability Matrix
    "sui_image_params",  # SwarmUI (split form)
    "negative_prompt",  # Easy Diffusion
    "Negative Prompt",  # Easy Diffusion (legacy casing)
    "Prompt",  # ComfyUI save-image-extended (EXIF Make prefix)
    "Workflow",  # ComfyUI save-image-extended (EXIF ImageDescription prefix)
    "Software",  # NovelAI and others
    "Description",  # NovelAI prompt copy
    "Title",  # NovelAI title
    "Source",  # NovelAI model source
    "Generation time",  # NovelAI
    "Make",  # EXIF Make without prefix
    "Dream",  # DreamStudio
    "XML:com.adobe.xmp",  # Draw Things XMP packet
    "UserComment",  # XMP exif:UserComment
    "CreatorTool",  # XMP xmp:CreatorTool
]

# Easy Diffusion writes one text chunk per field (snake_case, or the legacy
# display names); they travel with its negative_prompt carrier.
EASYDIFFUSION_KEYWORDS = [
    "use_stable_diffusion_model",
    "use_vae_model",
    "sampler_name",
    "num_inference_steps",
    "guidance_scale",
    "seed",
    "clip_skip",
    "width",
    "height",
    "Stable Diffusion model",
    "VAE model",
    "Sampler",
    "Steps",
    "Guidance Scale",
    "Seed",
    "Clip Skip",
    "Width",
    "Height",
]
CARRIER_KEYWORDS = CARRIER_KEYWORDS + EASYDIFFUSION_KEYWORDS

# Keywords that on their own identify a generation payload
PRIMARY_CARRIER_KEYWORDS = [
    "parameters",
    "Comment",
    "prompt",
    "workflow",
    "invokeai_metadata",
    "generation_data",
    "smproj",
    "parameters-json",
    "sui_image_params",
    "negative_prompt",
    "Negative Prompt",
    "Prompt",
    "Workflow",
    "Dream",
    "XML:com.adobe.xmp",
    "UserComment",
]

# Entry keywords that are written to EXIF tags other than UserComment
EXIF_DESCRIPTION_KEYWORDS = {"Description", "Workflow"}
EXIF_MAKE_KEYWORDS = {"Make", "Prompt"}

# Stealth alpha-channel carrier (NovelAI)
STEALTH_MAGIC_COMPRESSED = "stealth_pngcomp"
STEALTH_MAGIC_PLAIN = "stealth_pnginfo"

# Generation software identifiers and display labels
SOFTWARE_LABELS = {
    "novelai": "NovelAI",
    "comfyui": "ComfyUI",
    "swarmui": "SwarmUI",
    "tensorart": "TensorArt",
    "stability-matrix": "Stability Matrix",
    "invokeai": "InvokeAI",
    "sd-webui": "Stable Diffusion WebUI",
    "forge": "Forge",
    "forge-classic": "Forge - Classic",
    "forge-neo": "Forge - Neo",
    "reforge": "reForge",
    "easy-reforge": "EasyReforge",
    "sd-next": "SD.Next",
    "civitai": "Civitai",
    "hf-space": "Hugging Face Space",
    "easydiffusion": "Easy Diffusion",
    "fooocus": "Fooocus",
    "ruined-fooocus": "Ruined Fooocus",
    "draw-things": "Draw Things",
}

# Software ids that share the A1111 parameter-text convention
A1111_FAMILY = (
    "sd-webui",
    "forge",
    "forge-classic",
    "forge-neo",
    "reforge",
    "easy-reforge",
    "sd-next",
)

# NovelAI fixed chunk values
NOVELAI_TITLE = "NovelAI generated image"
NOVELAI_SOFTWARE = "NovelAI"

# Default keyword for vendor-neutral parameter text
DEFAULT_TEXT_KEYWORD = "parameters"

# Settings-line marker of A1111-style parameter text
STEPS_MARKER = "Steps:"

# xmp:CreatorTool values of generation tools that store settings in XMP
GENERATION_CREATOR_TOOLS = ("Draw Things",)

# Standard PNG text keywords; never picked up as a fallback payload
PNG_METADATA_KEYS = [
    "Author",
    "Title",
    "Description",
    "Copyright",
    "Creation Time",
    "Software",
    "Disclaimer",
    "Warning",
    "Source",
    "Comment",
]
