from types import MappingProxyType

from photomatch.formats.models import FormatCategory, FormatDescriptor

JPEG = "image/jpeg"


def _native(extension: str, mime: str, description: str, category: FormatCategory) -> FormatDescriptor:
    return FormatDescriptor(extension, mime, description, category, True, False)


def _convert(extension: str, mime: str, description: str, category: FormatCategory) -> FormatDescriptor:
    return FormatDescriptor(extension, mime, description, category, False, True, JPEG)


SUPPORTED_FORMATS: tuple[FormatDescriptor, ...] = (
    _native(".jpg", "image/jpeg", "JPEG Image", FormatCategory.WEB),
    _native(".jpeg", "image/jpeg", "JPEG Image", FormatCategory.WEB),
    _native(".png", "image/png", "PNG Image", FormatCategory.WEB),
    _native(".webp", "image/webp", "WebP Image", FormatCategory.WEB),
    _native(".svg", "image/svg+xml", "SVG Vector", FormatCategory.VECTOR),
    _native(".gif", "image/gif", "GIF Animation", FormatCategory.ANIMATION),
    _native(".bmp", "image/bmp", "Bitmap Image", FormatCategory.WEB),
    _native(".tiff", "image/tiff", "TIFF Image", FormatCategory.PRINT),
    _native(".tif", "image/tiff", "TIFF Image", FormatCategory.PRINT),
    _native(".ico", "image/x-icon", "Icon File", FormatCategory.WEB),
    _native(".apng", "image/apng", "Animated PNG", FormatCategory.ANIMATION),
    _convert(".heic", "image/heic", "HEIC Image", FormatCategory.WEB),
    _convert(".heif", "image/heif", "HEIF Image", FormatCategory.WEB),
    _convert(".raw", "image/x-raw", "RAW Image", FormatCategory.RAW),
    _convert(".cr2", "image/x-canon-cr2", "Canon RAW", FormatCategory.RAW),
    _convert(".nef", "image/x-nikon-nef", "Nikon RAW", FormatCategory.RAW),
    _convert(".arw", "image/x-sony-arw", "Sony RAW", FormatCategory.RAW),
    _convert(".orf", "image/x-olympus-orf", "Olympus RAW", FormatCategory.RAW),
    _convert(".dng", "image/x-adobe-dng", "Adobe DNG", FormatCategory.RAW),
    _convert(".rw2", "image/x-panasonic-rw2", "Panasonic RAW", FormatCategory.RAW),
    _convert(".pef", "image/x-pentax-pef", "Pentax RAW", FormatCategory.RAW),
    _convert(".srw", "image/x-samsung-srw", "Samsung RAW", FormatCategory.RAW),
    _convert(".psd", "image/vnd.adobe.photoshop", "Photoshop Document", FormatCategory.PRINT),
    _convert(".ai", "application/postscript", "Adobe Illustrator", FormatCategory.PRINT),
    _convert(".eps", "application/postscript", "Encapsulated PostScript", FormatCategory.PRINT),
    _convert(".indd", "application/x-indesign", "InDesign Document", FormatCategory.PRINT),
    _convert(".sketch", "application/x-sketch", "Sketch Document", FormatCategory.PRINT),
    _convert(".fig", "application/x-figma", "Figma Document", FormatCategory.PRINT),
    _convert(".tga", "image/x-tga", "Targa Image", FormatCategory.WEB),
    _convert(".pcx", "image/x-pcx", "PCX Image", FormatCategory.WEB),
    _convert(".xcf", "image/x-xcf", "GIMP Image", FormatCategory.PRINT),
    _convert(".kra", "image/x-krita", "Krita Document", FormatCategory.PRINT),
    _convert(".cdr", "application/x-coreldraw", "CorelDRAW Document", FormatCategory.PRINT),
    _convert(".afphoto", "application/x-affinity-photo", "Affinity Photo Document", FormatCategory.PRINT),
    _convert(".afdesign", "application/x-affinity-designer", "Affinity Designer Document", FormatCategory.PRINT),
)


def _build_registry() -> MappingProxyType[str, FormatDescriptor]:
    registry: dict[str, FormatDescriptor] = {}
    for descriptor in SUPPORTED_FORMATS:
        registry.setdefault(descriptor.extension, descriptor)
        registry.setdefault(descriptor.mime_type, descriptor)
    return MappingProxyType(registry)


FORMAT_REGISTRY = _build_registry()


def file_extension(name: str) -> str:
    """Lower-cased extension including the dot, or an empty string."""
    base = name.rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return "." + base.rsplit(".", 1)[-1].lower()


def classify(name: str, declared_type: str | None) -> FormatDescriptor | None:
    """Look up a file's format by extension, then MIME type.

    Unknown ``image/*`` types are accepted as a generic web image. Returns
    None when the file is not an image; callers must reject it.
    """
    extension = file_extension(name)
    mime_type = (declared_type or "").strip().lower()

    descriptor = FORMAT_REGISTRY.get(extension) if extension else None
    if descriptor is None and mime_type:
        descriptor = FORMAT_REGISTRY.get(mime_type)
    if descriptor is None and mime_type.startswith("image/"):
        return FormatDescriptor(
            extension=extension or ".unknown",
            mime_type=mime_type,
            description="Unknown Image Format",
            category=FormatCategory.WEB,
            is_supported=True,
            needs_conversion=False,
        )
    return descriptor


INDEXABLE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def is_indexable_key(key: str) -> bool:
    """True when a stored key names an image the face service can read."""
    return file_extension(key) in INDEXABLE_EXTENSIONS
