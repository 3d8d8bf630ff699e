from pydantic import BaseModel


class FamilyCreateModel(BaseModel):
    name: str = ""
    members: list[str] = []


class FamilyModel(FamilyCreateModel):
    id: str

    def has_member(self, member: str) -> bool:
        return member in self.members
