import pytest

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def _template(client, headers, listing_id, name, **extra):
    r = await client.post("/v1/post-templates", headers=headers, json={
        "business_profile_id": listing_id, "name": name, "content": f"{name} body", **extra,
    })
    assert r.status_code == 200, r.text
    return r.json()


async def test_post_template_crud_and_favorites(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    listing_id = seed_listing["listing_id"]

    weekly = await _template(client, headers, listing_id, "Weekly", tags=[" Bread ", "bread", "News"])
    offer = await _template(client, headers, listing_id, "Offer", post_type="OFFER",
                            call_to_action={"type": "ORDER", "url": "https://bakery.test/order"})
    assert weekly["tags"] == ["bread", "news"]
    assert offer["call_to_action"] == {"type": "ORDER", "url": "https://bakery.test/order"}

    fav = await client.post(f"/v1/post-templates/{weekly['id']}/favorite", headers=headers)
    assert fav.json() == {"success": True, "is_favorite": True}

    listed = await client.get("/v1/post-templates", headers=headers, params={"business_profile_id": listing_id})
    assert [t["name"] for t in listed.json()] == ["Weekly", "Offer"]

    offers = await client.get("/v1/post-templates", headers=headers, params={"post_type": "OFFER"})
    assert [t["name"] for t in offers.json()] == ["Offer"]

    blank = await client.patch(f"/v1/post-templates/{offer['id']}", headers=headers, json={"content": "  "})
    assert blank.status_code == 400

    patched = await client.patch(f"/v1/post-templates/{offer['id']}", headers=headers, json={"name": " Spring Offer "})
    assert patched.json()["name"] == "Spring Offer"

    deleted = await client.delete(f"/v1/post-templates/{offer['id']}", headers=headers)
    assert deleted.status_code == 200
    listed = await client.get("/v1/post-templates", headers=headers)
    assert [t["name"] for t in listed.json()] == ["Weekly"]


async def test_post_template_needs_name_and_content(client, seed_listing):
    r = await client.post("/v1/post-templates", headers={"X-API-Key": seed_listing["plain_key"]}, json={
        "business_profile_id": seed_listing["listing_id"], "name": " ", "content": "Fresh rolls",
    })
    assert r.status_code == 400
    assert r.json()["detail"] == "Name and content are required"


async def test_create_post_from_template_counts_usage(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    listing_id = seed_listing["listing_id"]
    template = await _template(client, headers, listing_id, "Weekly")

    r = await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": listing_id,
        "content": "  Fresh rolls today  ",
        "template_id": template["id"],
        "status": "PUBLISHED",
        "media": [
            {"url": "https://cdn.test/b.jpg", "order": 2},
            {"url": "https://cdn.test/a.jpg", "order": 1},
        ],
    })
    assert r.status_code == 200, r.text
    post = r.json()
    assert post["content"] == "Fresh rolls today"
    assert post["template_id"] == template["id"]
    assert post["published_at"] is not None
    assert [m["url"] for m in post["media"]] == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]

    listed = await client.get("/v1/post-templates", headers=headers)
    assert listed.json()[0]["usage_count"] == 1


async def test_create_post_validation(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    listing_id = seed_listing["listing_id"]

    blank = await client.post("/v1/posts", headers=headers, json={"business_profile_id": listing_id, "content": " "})
    assert blank.status_code == 400

    unscheduled = await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": listing_id, "content": "Soon", "status": "SCHEDULED",
    })
    assert unscheduled.status_code == 400
    assert unscheduled.json()["detail"] == "Scheduled posts need scheduled_at"

    missing_template = await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": listing_id, "content": "Hi", "template_id": "ptp_nope",
    })
    assert missing_template.status_code == 404


async def test_list_update_and_delete_posts(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    listing_id = seed_listing["listing_id"]

    draft = (await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": listing_id, "content": "Draft one",
    })).json()
    await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": listing_id, "content": "Later", "status": "SCHEDULED",
        "scheduled_at": "2030-01-01T09:00:00Z",
    })

    everything = await client.get("/v1/posts", headers=headers, params={"business_profile_id": listing_id, "status": "all"})
    assert [p["content"] for p in everything.json()] == ["Later", "Draft one"]

    drafts = await client.get("/v1/posts", headers=headers, params={"business_profile_id": listing_id, "status": "DRAFT"})
    assert [p["id"] for p in drafts.json()] == [draft["id"]]

    invalid = await client.get("/v1/posts", headers=headers, params={"business_profile_id": listing_id, "status": "LIVE"})
    assert invalid.status_code == 400

    published = await client.patch(f"/v1/posts/{draft['id']}", headers=headers, json={"status": "PUBLISHED"})
    assert published.status_code == 200
    first_published_at = published.json()["published_at"]
    assert first_published_at is not None

    edited = await client.patch(f"/v1/posts/{draft['id']}", headers=headers, json={"content": "Edited"})
    assert edited.json()["published_at"] == first_published_at
    assert edited.json()["content"] == "Edited"

    unschedule = await client.patch(f"/v1/posts/{draft['id']}", headers=headers, json={"status": "SCHEDULED"})
    assert unschedule.status_code == 400

    deleted = await client.delete(f"/v1/posts/{draft['id']}", headers=headers)
    assert deleted.status_code == 200
    gone = await client.get(f"/v1/posts/{draft['id']}", headers=headers)
    assert gone.status_code == 404


async def test_posts_of_other_organization_are_hidden(client, seed_listing, seed_other_org):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    post = (await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": seed_listing["listing_id"], "content": "Ours",
    })).json()

    other = {"X-API-Key": seed_other_org["plain_key"]}
    assert (await client.get(f"/v1/posts/{post['id']}", headers=other)).status_code == 404
    listed = await client.get("/v1/posts", headers=other, params={"business_profile_id": seed_listing["listing_id"]})
    assert listed.status_code == 404
    created = await client.post("/v1/posts", headers=other, json={
        "business_profile_id": seed_listing["listing_id"], "content": "Theirs",
    })
    assert created.status_code == 404
