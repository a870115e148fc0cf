from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal


DIETARY_TAGS = [
    "vegetarian",
    "vegan",
    "gluten-free",
    "nut-allergy",
    "shellfish-allergy",
    "lactose-free",
    "halal",
    "kosher",
]


class StreamRequest(BaseModel):
    """Body of both streaming endpoints"""
    placeId: Optional[str] = None
    restaurantName: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    rating: Optional[float] = None


class MenuItem(BaseModel):
    name: str
    description: Optional[str] = None
    price: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class StructuredMenu(BaseModel):
    items: List[MenuItem] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    cuisine: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class MenuChunk(BaseModel):
    """One incrementally produced piece of the structured menu"""
    type: Literal["description", "cuisine", "tags", "category", "item"]
    data: Dict[str, Any]

    @classmethod
    def description(cls, text: str) -> "MenuChunk":
        return cls(type="description", data={"description": text})

    @classmethod
    def cuisine(cls, text: str) -> "MenuChunk":
        return cls(type="cuisine", data={"cuisine": text})

    @classmethod
    def tags(cls, tags: List[str]) -> "MenuChunk":
        return cls(type="tags", data={"tags": tags})

    @classmethod
    def category(cls, name: str) -> "MenuChunk":
        return cls(type="category", data={"categoryName": name})

    @classmethod
    def item(cls, item: Dict[str, Any]) -> "MenuChunk":
        return cls(type="item", data={"item": item})


class RestaurantInfo(BaseModel):
    name: str
    websiteUrl: Optional[str] = None
    city: Optional[str] = None
    currency: str = "USD"
    logo: Optional[str] = None
    colors: Optional[Dict[str, str]] = None


class MenuDebug(BaseModel):
    """Observability payload returned by the blocking endpoint"""
    websiteScraperOutput: Optional[str] = None
    googleMapsScraperOutput: Optional[str] = None
    websiteLogo: Optional[str] = None
    googleMapsLogo: Optional[str] = None
    websiteColors: Optional[Dict[str, str]] = None
    googleMapsColors: Optional[Dict[str, str]] = None
    gptInput: str
    inputLength: int


class MenuResponse(BaseModel):
    restaurant: RestaurantInfo
    menu: StructuredMenu
    debug: MenuDebug
